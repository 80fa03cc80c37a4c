"""Run failure sensor for matching runs.

Failed runs get two kinds of tags:
- failure_type: classified reasons (e.g. QDRANT_UNAVAILABLE), or UNKNOWN_FAILURE
  so unrecognized failures surface for investigation.
- matching_subject: the manager or candidate the run was matching, read from the
  op config, so repeated failures for one profile are easy to filter.
"""

from typing import Any

import dagster as dg

FAILURE_TAG = "failure_type"
SUBJECT_TAG = "matching_subject"

KNOWN_FAILURES: list[tuple[str, list[str]]] = [
    (
        "OPENROUTER_API_ERROR",
        ["openrouter.ai", "OpenRouter /", "422 Unprocessable Entity"],
    ),
    (
        "QDRANT_UNAVAILABLE",
        ["Qdrant", "UnexpectedResponse", "ResponseHandlingException"],
    ),
    (
        "DATABASE_UNAVAILABLE",
        ["OperationalError", "could not connect to server", "connection refused"],
    ),
    (
        "INVALID_PROFILE_DATA",
        ["DataError", "is malformed"],
    ),
    (
        "STATUS_CONFLICT",
        ["StatusConflictError", "is no longer"],
    ),
    (
        "INVARIANT_VIOLATION",
        ["InvariantViolation"],
    ),
    (
        "RATE_LIMIT",
        ["429", "Too Many Requests", "rate limit"],
    ),
]

# op name -> (config key, subject prefix)
SUBJECT_CONFIG_KEYS: dict[str, tuple[str, str]] = {
    "run_manager_matching": ("manager_user_id", "manager"),
    "run_candidate_matching": ("candidate_user_id", "candidate"),
}


def _classify_failure(error_str: str) -> list[str]:
    """Return all matching failure tags for the given error string."""
    lowered = error_str.lower()
    return [
        tag
        for tag, patterns in KNOWN_FAILURES
        if any(p.lower() in lowered for p in patterns)
    ]


def _matching_subject(run_config: dict[str, Any]) -> str | None:
    """Return manager:<id> or candidate:<id> from a matching job's op config."""
    ops = run_config.get("ops") or {}
    for op_name, (key, prefix) in SUBJECT_CONFIG_KEYS.items():
        subject_id = ((ops.get(op_name) or {}).get("config") or {}).get(key)
        if subject_id is not None:
            return f"{prefix}:{subject_id}"
    return None


@dg.run_failure_sensor(
    name="run_failure_tagger",
    description=(
        "Tags failed matching runs with classified failure reasons and the manager "
        "or candidate being matched. Unknown failures get UNKNOWN_FAILURE."
    ),
    default_status=dg.DefaultSensorStatus.RUNNING,
)
def run_failure_tagger(context: dg.RunFailureSensorContext):
    run = context.dagster_run

    failure_types: set[str] = set()
    for event in context.get_step_failure_events():
        failure_data = event.step_failure_data
        if failure_data is not None and failure_data.error is not None:
            failure_types.update(_classify_failure(failure_data.error.to_string()))

    if not failure_types:
        run_error = context.failure_event.job_failure_data.error
        if run_error is not None:
            failure_types.update(_classify_failure(run_error.to_string()))

    tags = {FAILURE_TAG: ", ".join(sorted(failure_types)) or "UNKNOWN_FAILURE"}
    subject = _matching_subject(run.run_config or {})
    if subject is not None:
        tags[SUBJECT_TAG] = subject

    context.instance.add_run_tags(run.run_id, tags)
    context.log.info(f"Tagged failed run {run.run_id} ({run.job_name}) with {tags}")
