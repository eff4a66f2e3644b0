"""Exception types raised inside FocusLog.

None of these are meant to reach the host process: each subsystem catches them
at its boundary and degrades to a safe default (skipped tick, previous
category, heuristic score, skipped group).
"""
from typing import Iterable, Optional


class FocusLogError(Exception):
    """Base class for all FocusLog errors."""


class ProbeUnavailable(FocusLogError):
    """The foreground-window probe cannot be used on this machine."""


class ServiceError(FocusLogError):
    """The completion service failed (network, auth, quota, blocked or empty response)."""


class InvalidCategoryResponse(FocusLogError):
    """The completion service answered with a label outside the current taxonomy."""

    def __init__(self, label: str, allowed: Iterable[str]):
        self.label = label
        self.allowed = list(allowed)
        super().__init__(f"'{label}' is not one of {self.allowed}")


class PersistenceError(FocusLogError):
    """A session or settings read/write failed."""


class ChunkProcessingError(FocusLogError):
    """A batch re-categorization group could not be processed."""

    def __init__(self, message: str, process_name: Optional[str] = None):
        self.process_name = process_name
        super().__init__(message)
