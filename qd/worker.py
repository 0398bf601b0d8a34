"""Daemon loop executing jobs from the queue."""

import logging
import signal
import time
from contextlib import contextmanager, nullcontext
from typing import Callable, Iterator, List, Optional, Set, Tuple

from .command import Command
from .exceptions import StorageUnavailable
from .models import Identifier
from .queue import Queue, ReadyJob

logger = logging.getLogger(__name__)


class Daemon:
    """Executes ready jobs and requeues failed ones on a fixed schedule."""

    def __init__(
        self,
        queue: Queue,
        command: Command,
        scan_interval: float = 5.0,
        retry_interval: float = 300.0,
        tick: float = 1.0,
        job_id_env: str = "QD_JOB_ID",
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.queue = queue
        self.command = command
        self.scan_interval = scan_interval
        self.retry_interval = retry_interval
        self.tick = tick
        self.job_id_env = job_id_env
        self.clock = clock
        self.sleep = sleep
        self.running = True
        self.next_scan: Optional[float] = None
        self.current_job: Optional[ReadyJob] = None

    def _handle_shutdown(self, signum, frame):
        """Handle shutdown signal gracefully."""
        self.running = False
        if self.current_job:
            logger.warning("Finishing current job %s before stopping", self.current_job.identifier)

    @contextmanager
    def signal_handlers(self) -> Iterator[None]:
        """Stop after the current job on SIGINT/SIGTERM."""
        previous = {
            signum: signal.signal(signum, self._handle_shutdown)
            for signum in (signal.SIGTERM, signal.SIGINT)
        }
        try:
            yield
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)

    def run(self, handle_signals: bool = False) -> None:
        """Run until stopped. Only one daemon may run against a queue."""
        signals = self.signal_handlers() if handle_signals else nullcontext()
        with self.queue.lock(), signals:
            logger.info("Daemon started on %s: %s", self.queue.root, self.command)
            self.next_scan = self.clock()
            while self.running:
                now = self.clock()
                if now >= self.next_scan:
                    self.scan(now)
                    self.next_scan += self.scan_interval
                if self.running:
                    self.sleep(self.tick)
            logger.info("Daemon stopped")

    def scan(self, now: float) -> None:
        """Run one retry pass followed by one drain pass."""
        logger.debug("Scanning: now=%s, next_scan=%s", now, self.next_scan)
        self.queue.reset_reports()
        try:
            self.retry_pass(now)
        except StorageUnavailable:
            logger.exception("Retry pass failed")

        try:
            self.drain_pass()
        except StorageUnavailable:
            logger.exception("Drain pass failed")

    def retry_pass(self, now: float) -> List[Identifier]:
        """Requeue failed jobs that waited at least retry_interval."""
        retried = []
        for failed in self.queue.list_failed():
            if failed.since() + self.retry_interval > now:
                continue
            logger.info("Retrying job %s", failed.identifier)
            try:
                failed.retry()
            except StorageUnavailable:
                logger.exception("Cannot retry job %s", failed.identifier)
                continue
            retried.append(failed.identifier)
        return retried

    def drain_pass(self) -> Tuple[int, int]:
        """Execute ready jobs until none is left. Returns (completed, failed)."""
        seen: Set[Identifier] = set()
        completed = failed = 0
        while self.running:
            job = self.queue.poll_next_ready(exclude=seen)
            if job is None:
                break
            seen.add(job.identifier)
            try:
                if self.execute(job):
                    completed += 1
                else:
                    failed += 1
            except StorageUnavailable:
                logger.exception("Cannot update job %s", job.identifier)
        return completed, failed

    def execute(self, job: ReadyJob) -> bool:
        """Execute a single job and move it according to the outcome."""
        identifier = job.identifier
        logger.info("Executing job %s", identifier)

        self.current_job = job
        try:
            success = self.command.run(job.path, {self.job_id_env: identifier.render()})
        finally:
            self.current_job = None

        if success:
            logger.info("Job completed: %s", identifier)
            job.complete()
        else:
            logger.warning("Job failed: %s", identifier)
            job.error()
        return success
