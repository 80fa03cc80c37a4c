"""Error taxonomy for the matching pipeline.

ProviderError and DataError are recoverable: the component that made the call
catches them and the affected tier or candidate contributes nothing.
ValidationError is recovered by substituting a deterministic fallback.
InvariantViolation signals a programming error and is never caught by the pipeline.
"""


class MatchingError(Exception):
    """Base class for all matching pipeline errors."""


class ProviderError(MatchingError):
    """An embedding, LLM or similarity index call failed or timed out."""


class ValidationError(MatchingError):
    """An external refinement or explanation step returned a malformed payload."""


class DataError(MatchingError):
    """A profile or its mandatory fields are missing or incomplete."""


class InvariantViolation(MatchingError):
    """A result object was constructed with out-of-range or inconsistent values."""


class StatusConflictError(MatchingError):
    """A match record status changed between read and write (lost compare-and-swap)."""


class DecisionNotAllowedError(MatchingError):
    """A decision was submitted for a match the actor does not own or cannot act on."""
