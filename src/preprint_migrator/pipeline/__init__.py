"""Batch processing of preprint migrations."""

from .runner import Attempt, AttemptState, MigrationRunner, RunSummary

__all__ = [
    "Attempt",
    "AttemptState",
    "MigrationRunner",
    "RunSummary",
]
