"""qd - durable, filesystem-backed job spooler."""

from .command import Command
from .exceptions import (
    CommandSpawnFailed,
    CorruptEntry,
    JobConsumed,
    MalformedIdentifier,
    QdError,
    QueueLocked,
    StageConsumed,
    StorageUnavailable,
)
from .models import Identifier, Settings, Stats
from .queue import FailedJob, Job, Queue, ReadyJob, Stage
from .worker import Daemon

__version__ = "1.0.0"

__all__ = [
    "Command",
    "CommandSpawnFailed",
    "CorruptEntry",
    "Daemon",
    "FailedJob",
    "Identifier",
    "Job",
    "JobConsumed",
    "MalformedIdentifier",
    "QdError",
    "Queue",
    "QueueLocked",
    "ReadyJob",
    "Settings",
    "Stage",
    "StageConsumed",
    "Stats",
    "StorageUnavailable",
]
