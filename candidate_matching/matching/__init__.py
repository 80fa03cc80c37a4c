"""Matching pipeline: shortlist, filter, score, decide, record."""
