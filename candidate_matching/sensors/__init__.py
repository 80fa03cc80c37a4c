"""Dagster sensors for the candidate matching pipeline."""

from candidate_matching.sensors.run_failure_sensor import run_failure_tagger

__all__ = [
    "run_failure_tagger",
]
