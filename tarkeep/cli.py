"""
Command-line entry points.

    backup <source_dir> <dest_dir> <prefix> [retention_days]
    backup-scheduler <jobs.json> [--run-now NAME ...]

Exit status is 0 on success or skip and 1 on any usage error,
pre-flight failure, lock contention or archive failure.
"""

import sys
import signal
import logging
import threading
from typing import List, Optional

import typer

from tarkeep import configure_logging
from tarkeep.config import get_config
from tarkeep.models import RunStatus
from tarkeep.backup.executor import execute_backup

logger = logging.getLogger(__name__)

USAGE = "Usage: backup <source_directory> <destination_directory> <backup_prefix> [retention_days (optional)]"

# Status the command parser exits with after printing a usage error
USAGE_ERROR_STATUS = 2

app = typer.Typer(add_completion=False, help="Back up a directory into a compressed, content-addressed archive.")
scheduler_app = typer.Typer(add_completion=False, help="Run backup jobs on cron schedules.")


# Lets negative retention values such as -5 through as arguments
@app.command(context_settings={"ignore_unknown_options": True})
def backup(
    source_dir: str = typer.Argument(..., help="Directory to back up"),
    dest_dir: str = typer.Argument(..., help="Existing, writable directory receiving archives"),
    prefix: str = typer.Argument(..., help="Backup prefix naming the lock, ledger lines and archives"),
    retention_days: Optional[str] = typer.Argument(None, help="Days to keep archives (0 or omitted = keep all)"),
):
    """Back up SOURCE_DIR into DEST_DIR unless its content is unchanged."""
    cfg = get_config()
    configure_logging(cfg)

    result = execute_backup(source_dir, dest_dir, prefix, retention_days or 0, cfg=cfg)

    if result.status == RunStatus.FAILED:
        raise typer.Exit(code=1)
    raise typer.Exit(code=0)


@scheduler_app.command()
def run(
    jobs_file: str = typer.Argument(..., help="JSON file describing the scheduled jobs"),
    run_now: Optional[List[str]] = typer.Option(None, "--run-now", help="Trigger the named job immediately"),
):
    """Schedule the jobs in JOBS_FILE and run until terminated."""
    from tarkeep import scheduler

    cfg = get_config()
    configure_logging(cfg)

    try:
        jobs = scheduler.load_jobs_file(jobs_file)
    except ValueError as e:
        logger.error(str(e))
        raise typer.Exit(code=1)

    scheduler.init_scheduler(cfg)
    scheduler.sync_backup_jobs(jobs)
    scheduler.start_scheduler()

    try:
        for name in run_now or []:
            try:
                scheduler.trigger_backup_now(name)
            except ValueError as e:
                logger.error(str(e))

        _wait_for_termination()
    finally:
        scheduler.stop_scheduler()


def _raise_system_exit(signum, frame):
    # Unwinds through finally blocks so held locks are released
    raise SystemExit(128 + signum)


def install_signal_handlers():
    """Turn SIGTERM and SIGHUP into SystemExit."""
    for name in ('SIGTERM', 'SIGHUP'):
        signum = getattr(signal, name, None)
        if signum is not None:
            signal.signal(signum, _raise_system_exit)


def _wait_for_termination():
    """Block the main thread until a signal handler raises SystemExit."""
    threading.Event().wait()


def _invoke(typer_app, argv, prog_name) -> int:
    """
    Run a typer app and return its exit status.

    Usage errors exit with status 1 instead of the parser's 2.
    """
    install_signal_handlers()
    command = typer.main.get_command(typer_app)

    try:
        command.main(args=argv, prog_name=prog_name, standalone_mode=True)
    except SystemExit as e:
        if e.code == USAGE_ERROR_STATUS:
            if typer_app is app:
                typer.echo(USAGE, err=True)
            return 1
        return e.code if e.code is not None else 0

    return 0


def main(argv=None):
    """Entry point for `backup`."""
    sys.exit(_invoke(app, argv, 'backup'))


def scheduler_main(argv=None):
    """Entry point for `backup-scheduler`."""
    sys.exit(_invoke(scheduler_app, argv, 'backup-scheduler'))


if __name__ == '__main__':
    main()
