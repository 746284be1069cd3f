"""Error taxonomy for the eviction engine."""
from __future__ import annotations
from pathlib import Path


class SweepError(Exception):
    """Base class for everything the engine raises."""


class RootUnavailable(SweepError):
    """The cache root or one of its bookkeeping directories cannot be opened."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class RecordUnreadable(SweepError):
    """A single bookkeeping record is malformed. Never escapes the parser."""


class DeletionFailed(SweepError):
    def __init__(self, path: Path, error: OSError):
        super().__init__(f"failed to remove {path}: {error}")
        self.path = path
        self.error = error


class InvalidInput(SweepError, ValueError):
    """Caller supplied a value that cannot be used; raised before any I/O."""


class InvalidBudget(InvalidInput):
    pass


class InvalidCutoff(InvalidInput):
    pass
