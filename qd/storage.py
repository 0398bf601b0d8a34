"""Directory layout and atomic filesystem primitives for the queue."""

import fcntl
import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional

from .exceptions import QueueLocked, StorageUnavailable

logger = logging.getLogger(__name__)

STAGING = "staging"
READY = "ready"
FAILED = "failed"

AREAS = (STAGING, READY, FAILED)


class Storage:
    """Directory-backed storage for job directories.

    Layout (under root):
      staging/<id>  - jobs being written by a producer
      ready/<id>    - jobs waiting for the daemon
      failed/<id>   - jobs waiting for a retry

    All areas must live on one filesystem: moves are a single rename and
    never fall back to copying.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.staging_dir = self.root / STAGING
        self.ready_dir = self.root / READY
        self.failed_dir = self.root / FAILED
        self._lock_fd: Optional[int] = None

        for area in AREAS:
            path = self.area(area)
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageUnavailable(f"Cannot create {path}: {e}", path) from e

    def area(self, area: str) -> Path:
        """Get the directory of an area."""
        if area not in AREAS:
            raise ValueError(f"Unknown area: {area}")
        return self.root / area

    def create(self, area: str, name: str) -> Path:
        """Create an empty entry directory. Fails if it already exists."""
        path = self.area(area) / name
        logger.debug("Creating %s", path)
        try:
            path.mkdir()
        except OSError as e:
            raise StorageUnavailable(f"Cannot create {path}: {e}", path) from e
        return path

    def move(self, name: str, src: str, dst: str) -> Path:
        """Atomically rename an entry from one area into another."""
        source = self.area(src) / name
        target = self.area(dst) / name
        logger.debug("Moving %s -> %s", source, target)
        try:
            os.rename(source, target)
        except OSError as e:
            raise StorageUnavailable(f"Cannot move {source} -> {target}: {e}", source) from e
        return target

    def remove(self, area: str, name: str, missing_ok: bool = False) -> None:
        """Recursively delete an entry."""
        path = self.area(area) / name
        logger.debug("Deleting %s", path)
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            if not missing_ok:
                raise StorageUnavailable(f"Cannot delete {path}: no such entry", path)
        except OSError as e:
            raise StorageUnavailable(f"Cannot delete {path}: {e}", path) from e

    def entries(self, area: str) -> List[os.DirEntry]:
        """List the raw entries of an area, in directory order."""
        path = self.area(area)
        try:
            with os.scandir(path) as it:
                return list(it)
        except OSError as e:
            raise StorageUnavailable(f"Cannot list {path}: {e}", path) from e

    def ctime(self, area: str, name: str) -> float:
        """Get the status-change time of an entry (updated by rename)."""
        path = self.area(area) / name
        try:
            return path.stat().st_ctime
        except OSError as e:
            raise StorageUnavailable(f"Cannot stat {path}: {e}", path) from e

    def count(self, area: str) -> int:
        return len(self.entries(area))

    def acquire_lock(self) -> None:
        """Take the exclusive daemon lock on the root directory."""
        if self._lock_fd is not None:
            raise QueueLocked(f"Queue {self.root} is already locked by this process")

        try:
            fd = os.open(str(self.root), os.O_RDONLY | os.O_DIRECTORY)
        except OSError as e:
            raise StorageUnavailable(f"Cannot open {self.root}: {e}", self.root) from e

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            os.close(fd)
            raise QueueLocked(f"Queue {self.root} is in use by another daemon")

        self._lock_fd = fd

    def release_lock(self) -> None:
        """Release the daemon lock, if held."""
        if self._lock_fd is None:
            return
        fd, self._lock_fd = self._lock_fd, None
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
