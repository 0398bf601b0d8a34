"""CLI interface for qd."""

import json
import logging
import sys
from pathlib import Path
from typing import NoReturn, Optional, Tuple

import click
from pydantic import ValidationError

from .command import Command
from .exceptions import QdError
from .models import Settings
from .queue import Queue
from .utils import parse_duration
from .worker import Daemon

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [qd] %(levelname)s %(message)s"

# Commands take the rest of the line verbatim, options included.
PASSTHROUGH = {"ignore_unknown_options": True, "allow_interspersed_args": False}


class DurationType(click.ParamType):
    """Durations such as 30s, 5m, 1h30m or plain seconds."""

    name = "duration"

    def convert(self, value, param, ctx):
        if isinstance(value, float):
            return value
        try:
            return parse_duration(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


DURATION = DurationType()


def setup_logging(quiet: bool, verbosity: int) -> None:
    if quiet:
        level = logging.ERROR
    elif verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)


def fail(message: str) -> NoReturn:
    click.echo(f"✗ Error: {message}", err=True)
    sys.exit(1)


def open_queue(settings: Settings) -> Queue:
    try:
        return Queue.open(settings.path)
    except QdError as e:
        fail(str(e))


def parse_command(command: Tuple[str, ...]) -> Command:
    try:
        return Command.from_args(command)
    except ValueError as e:
        fail(str(e))


@click.group()
@click.option("--path", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Store queued jobs in this path [env: QD_PATH, default: /var/spool/qd]")
@click.option("-q", "--quiet", is_flag=True, help="Silence all output")
@click.option("-v", "--verbose", "verbosity", count=True, help="Increase message verbosity")
@click.pass_context
def cli(ctx: click.Context, path: Optional[Path], quiet: bool, verbosity: int):
    """qd - durable filesystem job spooler"""
    setup_logging(quiet, verbosity)
    try:
        settings = Settings()
    except ValidationError as e:
        fail(f"Invalid configuration: {e}")
    if path is not None:
        settings = settings.model_copy(update={"path": path})
    ctx.obj = settings


@cli.command(context_settings=PASSTHROUGH)
@click.option("--scan", type=DURATION, default=None, help="Scan for new jobs at this interval [default: 5s]")
@click.option("--retry", type=DURATION, default=None, help="Retry failed jobs after this delay [default: 5m]")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_obj
def daemon(settings: Settings, scan: Optional[float], retry: Optional[float], command: Tuple[str, ...]):
    """Execute jobs from the queue.

    COMMAND runs once per job, inside the job directory, with the job
    identifier in $QD_JOB_ID. Exit code 0 completes the job, anything
    else moves it to failed until the retry delay has passed.

    Example:
        qd --path /tmp/spool daemon --scan 10s --retry 1h ./deliver.sh
    """
    cmd = parse_command(command)
    queue = open_queue(settings)

    worker = Daemon(
        queue,
        cmd,
        scan_interval=scan if scan is not None else settings.scan_interval,
        retry_interval=retry if retry is not None else settings.retry_interval,
        tick=settings.tick,
        job_id_env=settings.job_id_env,
    )
    try:
        worker.run(handle_signals=True)
    except QdError as e:
        fail(str(e))


@cli.command(context_settings=PASSTHROUGH)
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_obj
def push(settings: Settings, command: Tuple[str, ...]):
    """Add a job to the queue.

    COMMAND runs inside the new, still invisible job directory and must
    fill it. On success the job is queued and its identifier printed;
    otherwise the directory is discarded.

    Example:
        qd push sh -c 'cp /var/mail/outgoing/42.eml .'
    """
    cmd = parse_command(command)
    queue = open_queue(settings)

    try:
        with queue.push() as stage:
            identifier = stage.identifier
            logger.info("Pushing job %s", identifier)
            if not cmd.run(stage.path, {settings.job_id_env: identifier.render()}):
                stage.dismiss()
                fail(f"Job dismissed, command failed: {cmd}")
            stage.persist()
    except QdError as e:
        fail(str(e))

    click.echo(identifier.render())


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print stats as JSON")
@click.pass_obj
def stats(settings: Settings, as_json: bool):
    """Print the number of ready and failed jobs."""
    queue = open_queue(settings)
    try:
        result = queue.stats()
    except QdError as e:
        fail(str(e))

    if as_json:
        click.echo(json.dumps(result.model_dump()))
    else:
        click.echo(f"ready: {result.ready}")
        click.echo(f"failed: {result.failed}")


@cli.command()
@click.option("--older-than", type=DURATION, default="1h", show_default=True,
              help="Only remove stages untouched for this long")
@click.pass_obj
def sweep(settings: Settings, older_than: float):
    """Remove staging directories left behind by crashed producers.

    Do not use an age shorter than the longest running push command.
    """
    queue = open_queue(settings)
    try:
        removed = queue.sweep_staging(older_than)
    except QdError as e:
        fail(str(e))

    for identifier in removed:
        click.echo(identifier.render())
    click.echo(f"Removed {len(removed)} abandoned stage(s)", err=True)


def main():
    cli()


if __name__ == "__main__":
    main()
