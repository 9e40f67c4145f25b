"""Errors raised by the observation engine.

Operator-facing errors leave the session untouched; the operator corrects the
input and re-issues the command. ``ReconciliationInvariantViolation`` signals a
defect and aborts the save.
"""
from __future__ import annotations


class ObservationError(Exception):
    """Base class for all observation engine errors."""


class ValidationError(ObservationError):
    """Observer, student or primary status missing at start."""


class InvalidTransition(ObservationError):
    """Command not allowed in the session's current phase."""


class DuplicateStatus(ObservationError):
    """Episode start rejected: status matches the primary status or an episode is already active."""


class NoActiveEpisode(ObservationError):
    pass


class EpisodeInProgress(ObservationError):
    """End attempted while a sub-episode is still active."""


class ZeroDuration(ObservationError):
    """End or episode end attempted with zero measured time."""


class ReconciliationInvariantViolation(ObservationError):
    """Reconciled episode durations do not sum to the elapsed time."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Episode durations sum to {actual}s, expected {expected}s")
        self.expected = expected
        self.actual = actual
