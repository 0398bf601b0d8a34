"""Error taxonomy for qd."""

from pathlib import Path
from typing import Optional


class QdError(Exception):
    """Base class for all qd errors."""


class StorageUnavailable(QdError):
    """A filesystem operation on the queue failed."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class CorruptEntry(QdError):
    """A queue directory holds an entry that is not a job."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Corrupt entry {path}: {reason}")
        self.path = path
        self.reason = reason


class MalformedIdentifier(QdError, ValueError):
    """Text is not a valid rendering of a job identifier."""


class CommandSpawnFailed(QdError):
    """The external command could not be started at all."""


class QueueLocked(QdError):
    """Another daemon already owns the queue."""


class StageConsumed(RuntimeError):
    """A stage was used after persist() or dismiss()."""


class JobConsumed(RuntimeError):
    """A job handle was used after its transition."""
