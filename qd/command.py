"""External command execution."""

import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

from .exceptions import CommandSpawnFailed

logger = logging.getLogger(__name__)


class Command:
    """A program plus arguments, run inside a job directory."""

    def __init__(self, program: str, arguments: Optional[List[str]] = None):
        self.program = program
        self.arguments = list(arguments or [])

    @classmethod
    def from_args(cls, command: Sequence[str]) -> "Command":
        """Build from an argument vector.

        A single value is split shell-style, so both `qd push sh -c 'x'`
        and `qd push "sh -c 'x'"` work.
        """
        if not command:
            raise ValueError("Empty command")

        program, *arguments = command
        if not arguments:
            try:
                parts = shlex.split(program)
            except ValueError as e:
                raise ValueError(f"Can not parse command {program!r}: {e}") from e
            if not parts:
                raise ValueError("Empty command")
            program, *arguments = parts

        return cls(program, arguments)

    @property
    def argv(self) -> List[str]:
        return [self.program, *self.arguments]

    def run(self, cwd: Path, env: Optional[Mapping[str, str]] = None) -> bool:
        """Run to completion and report whether the exit code was zero.

        Output goes straight to our stdout/stderr; stdin is closed.
        """
        environ = os.environ.copy()
        environ.update(env or {})

        logger.debug("Running %s in %s", self, cwd)
        try:
            result = subprocess.run(
                self.argv,
                cwd=str(cwd),
                env=environ,
                stdin=subprocess.DEVNULL,
            )
        except OSError as e:
            raise CommandSpawnFailed(f"Cannot execute {self.program!r}: {e}") from e

        if result.returncode != 0:
            logger.debug("%s exited with code %d", self, result.returncode)
        return result.returncode == 0

    def __str__(self) -> str:
        return shlex.join(self.argv)

    def __repr__(self) -> str:
        return f"Command({self.program!r}, {self.arguments!r})"
