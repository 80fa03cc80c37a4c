"""LLM operation modules.

Each module contains:
- PROMPT_VERSION: Bump when prompt changes
- SYSTEM_PROMPT: The prompt template (completion operations)
- An async function that performs the operation
"""
