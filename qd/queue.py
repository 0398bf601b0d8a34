"""Job queue management.

A job is a directory named by its identifier. Its state is the area the
directory lives in, and every state change is one atomic rename (or a
recursive delete), so a crash never leaves a job in two places.
"""

import logging
import time
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Collection, Iterator, List, Optional, Set

from .exceptions import CorruptEntry, JobConsumed, MalformedIdentifier, StageConsumed, StorageUnavailable
from .models import Identifier, Stats
from .storage import FAILED, READY, STAGING, Storage

logger = logging.getLogger(__name__)


class Queue:
    """Manages job queue operations."""

    def __init__(self, storage: Storage):
        self.storage = storage
        self._reported: Set[str] = set()

    @classmethod
    def open(cls, root: Path) -> "Queue":
        """Open the queue at root, creating its directories if needed."""
        return cls(Storage(root))

    @property
    def root(self) -> Path:
        return self.storage.root

    def push(self) -> "Stage":
        """Allocate a new job in staging."""
        identifier = Identifier.generate()
        path = self.storage.create(STAGING, identifier.render())
        return Stage(self, identifier, path)

    def poll_next_ready(self, exclude: Collection[Identifier] = ()) -> Optional["ReadyJob"]:
        """Get any one ready job, or None if there is nothing to do.

        No ordering is guaranteed between ready jobs.
        """
        for identifier in self._scan(READY):
            if identifier in exclude:
                continue
            return ReadyJob(self, identifier)
        return None

    def list_failed(self) -> List["FailedJob"]:
        """Get all failed jobs together with the time they failed."""
        jobs = []
        for identifier in self._scan(FAILED):
            try:
                since = self.storage.ctime(FAILED, identifier.render())
            except StorageUnavailable:
                # Retried or removed while listing
                logger.debug("Failed job %s vanished while listing", identifier)
                continue
            jobs.append(FailedJob(self, identifier, since))
        return jobs

    def stats(self) -> Stats:
        """Get entry counts. Not consistent with concurrent mutation."""
        return Stats(
            ready=self.storage.count(READY),
            failed=self.storage.count(FAILED),
        )

    def sweep_staging(self, older_than: float, now: Optional[float] = None) -> List[Identifier]:
        """Delete staging directories abandoned by crashed producers.

        Only entries whose ctime is more than older_than seconds in the past
        are removed, so producers still writing a job are left alone.
        """
        now = time.time() if now is None else now
        removed = []
        for identifier in self._scan(STAGING):
            name = identifier.render()
            try:
                age = now - self.storage.ctime(STAGING, name)
            except StorageUnavailable:
                continue
            if age < older_than:
                continue
            logger.info("Removing abandoned stage %s (age %.0fs)", identifier, age)
            try:
                self.storage.remove(STAGING, name, missing_ok=True)
            except StorageUnavailable:
                logger.exception("Cannot remove abandoned stage %s", identifier)
                continue
            removed.append(identifier)
        return removed

    def reset_reports(self) -> None:
        """Report already seen corrupt entries again on the next listing."""
        self._reported.clear()

    @contextmanager
    def lock(self) -> Iterator["Queue"]:
        """Hold the single-daemon lock for the duration of the block."""
        self.storage.acquire_lock()
        try:
            yield self
        finally:
            self.storage.release_lock()

    def _scan(self, area: str) -> Iterator[Identifier]:
        """Yield identifiers of an area, logging entries that are not jobs."""
        for entry in self.storage.entries(area):
            try:
                identifier = Identifier.parse(entry.name)
            except MalformedIdentifier as e:
                self._report(CorruptEntry(Path(entry.path), str(e)))
                continue
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
            except OSError:
                is_dir = False
            if not is_dir:
                self._report(CorruptEntry(Path(entry.path), "not a directory"))
                continue
            yield identifier

    def _report(self, corrupt: CorruptEntry) -> None:
        # Once per entry until reset_reports(), repeats only at debug level
        key = str(corrupt.path)
        if key in self._reported:
            logger.debug("%s", corrupt)
            return
        self._reported.add(key)
        logger.warning("%s", corrupt)


class Stage:
    """A job under construction, invisible to consumers until persisted.

    Use as a context manager: leaving the block without persist() or
    dismiss() deletes the directory. A stage that is simply dropped is
    removed when it is garbage collected or at interpreter exit.
    """

    def __init__(self, queue: Queue, identifier: Identifier, path: Path):
        self._queue = queue
        self._identifier = identifier
        self._path: Optional[Path] = path
        self._finalizer = weakref.finalize(
            self, queue.storage.remove, STAGING, identifier.render(), missing_ok=True
        )

    @property
    def identifier(self) -> Identifier:
        return self._identifier

    @property
    def path(self) -> Path:
        self._check()
        return self._path

    @property
    def live(self) -> bool:
        return self._path is not None

    def persist(self) -> "ReadyJob":
        """Make the job visible to the daemon."""
        self._check()
        self._queue.storage.move(self._identifier.render(), STAGING, READY)
        self._finalizer.detach()
        self._path = None
        return ReadyJob(self._queue, self._identifier)

    def dismiss(self) -> None:
        """Throw the job away."""
        self._check()
        self._remove()

    def _check(self) -> None:
        if self._path is None:
            raise StageConsumed(f"Stage {self._identifier} was already persisted or dismissed")

    def _remove(self) -> None:
        if self._path is None:
            return
        self._path = None
        self._finalizer()

    def __enter__(self) -> "Stage":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._remove()

    def __repr__(self) -> str:
        return f"<Stage {self._identifier} live={self.live}>"


class Job:
    """Read-only view of a job directory in the ready or failed area."""

    area = ""

    def __init__(self, queue: Queue, identifier: Identifier):
        self._queue = queue
        self._identifier = identifier
        self._consumed = False

    @property
    def identifier(self) -> Identifier:
        return self._identifier

    @property
    def path(self) -> Path:
        self._check()
        return self._queue.storage.area(self.area) / self._identifier.render()

    def _check(self) -> None:
        if self._consumed:
            raise JobConsumed(f"Job {self._identifier} handle was already used for a transition")

    def _consume(self) -> str:
        self._check()
        self._consumed = True
        return self._identifier.render()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._identifier}>"


class ReadyJob(Job):
    """A job waiting to be executed."""

    area = READY

    def complete(self) -> None:
        """Delete the job after successful execution."""
        name = self._consume()
        self._queue.storage.remove(READY, name)

    def error(self) -> "FailedJob":
        """Move the job to the failed area."""
        name = self._consume()
        self._queue.storage.move(name, READY, FAILED)
        try:
            since = self._queue.storage.ctime(FAILED, name)
        except StorageUnavailable:
            since = time.time()
            logger.debug("Cannot read ctime of failed job %s, using current time", self._identifier)
        return FailedJob(self._queue, self._identifier, since)


class FailedJob(Job):
    """A job whose last execution failed, waiting for a retry."""

    area = FAILED

    def __init__(self, queue: Queue, identifier: Identifier, since: float):
        super().__init__(queue, identifier)
        self._since = since

    def since(self) -> float:
        """Unix time the job entered the failed area."""
        return self._since

    def retry(self) -> ReadyJob:
        """Move the job back to the ready area."""
        name = self._consume()
        self._queue.storage.move(name, FAILED, READY)
        return ReadyJob(self._queue, self._identifier)
