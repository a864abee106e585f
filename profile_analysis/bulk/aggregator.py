"""Collects per-profile outcomes into successes and failures."""

from __future__ import annotations

import logging
from typing import Iterable

from profile_analysis.models import (
    BulkErrorEntry,
    ProfileFailure,
    ProfileOutcome,
    ProfileSuccess,
)

logger = logging.getLogger(__name__)


class ResultAggregator:
    """Accumulates outcomes without ever failing on an individual profile.

    Invariant once complete: ``len(successes) + len(failures) == expected``.
    """

    def __init__(self, expected: int):
        self.expected = expected
        self.successes: list[ProfileSuccess] = []
        self.failures: list[ProfileFailure] = []

    def add(self, outcome: ProfileOutcome) -> None:
        if isinstance(outcome, ProfileSuccess):
            self.successes.append(outcome)
        else:
            self.failures.append(outcome)

    def extend(self, outcomes: Iterable[ProfileOutcome]) -> None:
        for outcome in outcomes:
            self.add(outcome)

    @property
    def total(self) -> int:
        return len(self.successes) + len(self.failures)

    @property
    def remaining(self) -> int:
        return self.expected - self.total

    def ensure_complete(self) -> None:
        """Raise if any submitted identifier is missing or duplicated."""
        if self.total != self.expected:
            raise RuntimeError(
                f"Outcome count mismatch: {self.total} outcomes for {self.expected} profiles"
            )

    def error_entries(self) -> list[BulkErrorEntry]:
        return [
            BulkErrorEntry(profile=f.identifier, error=f.error, reason=f.reason)
            for f in self.failures
        ]
