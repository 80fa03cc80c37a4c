"""Dagster definitions for the Candidate Matching system.

This module is the entry point for Dagster. It wires together:
- Resources (OpenRouter for LLM + embeddings, Qdrant index, profile and match stores)
- Jobs (manager matching, candidate matching, index backfill)
- Schedules (hourly re-matching of active jobs)
- Sensors (run failure tagging)
"""

import os

from dagster import Definitions, EnvVar
from dotenv import load_dotenv

from candidate_matching.jobs import (
    active_managers_matching_job,
    active_managers_matching_schedule,
    candidate_matching_job,
    index_backfill_job,
    manager_matching_job,
)
from candidate_matching.resources import (
    MatchStoreResource,
    MockEmbeddingResource,
    OpenRouterResource,
    ProfileStoreResource,
    QdrantResource,
)
from candidate_matching.sensors import run_failure_tagger

# Load environment variables from .env file (must be before resource initialization)
load_dotenv()


def get_environment() -> str:
    """Get current environment from env var."""
    return os.getenv("ENVIRONMENT", "development")


resources = {
    # OpenRouter LLM resource with cost tracking (also handles embeddings)
    "openrouter": OpenRouterResource(default_model="openai/gpt-4o-mini"),
    # Deterministic embeddings used when no OpenRouter key is configured
    "embeddings": MockEmbeddingResource(),
    # Similarity index; disabled (every call a no-op) when QDRANT_URL is unset
    "qdrant": QdrantResource(),
    # Stores share the process-wide engine from candidate_matching.db
    "profile_store": ProfileStoreResource(),
    "match_store": MatchStoreResource(),
}

if get_environment() == "production":
    # Production requires OPENROUTER_API_KEY
    resources["openrouter"] = OpenRouterResource(
        api_key=EnvVar("OPENROUTER_API_KEY"),
        default_model="openai/gpt-4o-mini",
    )

all_jobs = [
    manager_matching_job,
    candidate_matching_job,
    active_managers_matching_job,
    index_backfill_job,
]

all_schedules = [
    active_managers_matching_schedule,
]

all_sensors = [
    run_failure_tagger,
]

defs = Definitions(
    resources=resources,
    jobs=all_jobs,
    schedules=all_schedules,
    sensors=all_sensors,
)


def main():
    """Entry point for CLI usage."""
    print("Candidate Matching Dagster project loaded successfully!")
    print(f"Environment: {get_environment()}")
    print(f"Jobs: {len(all_jobs)}")
    print(f"Schedules: {len(all_schedules)}")
    print("\nAvailable jobs:")
    for job in all_jobs:
        print(f"  - {job.name}")
    print("\nRun 'dagster dev' to start the development server.")


if __name__ == "__main__":
    main()
