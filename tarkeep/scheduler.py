"""
APScheduler configuration and job scheduling for Tarkeep.

Manages:
- Scheduled backup jobs (based on cron expressions) loaded from a JSON file
- Manual job triggers

Every run goes through BackupExecutor, so overlapping runs against the
same destination and prefix are still rejected by the prefix lock.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.executors.pool import ThreadPoolExecutor

from tarkeep.config import Config
from tarkeep.models import BackupJob, ScheduledBackup
from tarkeep.backup.executor import BackupExecutor

logger = logging.getLogger(__name__)

# Global scheduler instance, its configuration and the known jobs by name
scheduler = None
app_config = Config
backup_jobs: Dict[str, ScheduledBackup] = {}


def load_jobs_file(path) -> List[ScheduledBackup]:
    """
    Load scheduled backups from a JSON jobs file.

    Format:
        {"jobs": [{"name": "home", "source": "/home/me", "destination": "/backups",
                   "prefix": "home", "retention_days": 7,
                   "schedule": "0 3 * * *", "enabled": true}]}

    Invalid entries are logged and skipped.

    Returns:
        List of ScheduledBackup

    Raises:
        ValueError: If the file cannot be read or is not a valid jobs document
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            document = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValueError(f"Failed to load jobs file {path}: {e}")

    if not isinstance(document, dict) or not isinstance(document.get('jobs'), list):
        raise ValueError(f"Jobs file {path} must contain a 'jobs' list")

    jobs = []
    seen = set()

    for index, entry in enumerate(document['jobs']):
        try:
            name = str(entry['name'])
            if name in seen:
                raise ValueError(f"duplicate job name '{name}'")

            job = BackupJob.from_args(
                entry['source'],
                entry['destination'],
                entry.get('prefix') or name,
                entry.get('retention_days', 0)
            )
            schedule = entry.get('schedule')
            if schedule:
                # Validate early so a typo is reported at load time
                CronTrigger.from_crontab(schedule)

            jobs.append(ScheduledBackup(
                name=name,
                job=job,
                schedule=schedule,
                enabled=bool(entry.get('enabled', True))
            ))
            seen.add(name)

        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Skipping invalid job entry #{index} in {path}: {e}")

    return jobs


def init_scheduler(cfg=Config):
    """
    Initialize and configure APScheduler.

    Args:
        cfg: Configuration class
    """
    global scheduler, app_config

    if scheduler is not None:
        return scheduler

    app_config = cfg

    executors = {
        'default': ThreadPoolExecutor(max_workers=3)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one instance of a job at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    scheduler = BackgroundScheduler(
        executors=executors,
        job_defaults=job_defaults,
        timezone=cfg.SCHEDULER_TIMEZONE
    )

    return scheduler


def start_scheduler():
    """Start the APScheduler."""
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")

        jobs = scheduler.get_jobs()
        if jobs:
            logger.info(f"Loaded {len(jobs)} scheduled jobs:")
            for job in jobs:
                next_run = job.next_run_time.isoformat() if job.next_run_time else 'N/A'
                logger.info(f"  - {job.id}: {job.name} (next run: {next_run})")
        else:
            logger.info("No scheduled jobs loaded")
    else:
        logger.info("Scheduler already running")


def stop_scheduler():
    """Stop the APScheduler."""
    if scheduler and scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")


def sync_backup_jobs(jobs: List[ScheduledBackup]):
    """
    Synchronize backup jobs into the scheduler.

    Enabled jobs with a schedule are added or rescheduled; everything else,
    including jobs no longer present, is removed.
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized")

    backup_jobs.clear()
    backup_jobs.update({job.name: job for job in jobs})

    scheduled_job_ids = {job.id for job in scheduler.get_jobs() if job.id.startswith('backup_')}

    for scheduled in jobs:
        job_id = f"backup_{scheduled.name}"

        if scheduled.enabled and scheduled.schedule:
            if job_id in scheduled_job_ids:
                _update_scheduled_job(scheduled)
                scheduled_job_ids.discard(job_id)
            else:
                _add_scheduled_job(scheduled)
        elif job_id in scheduled_job_ids:
            _remove_scheduled_job(scheduled.name)
            scheduled_job_ids.discard(job_id)

    # Remove any leftover scheduled jobs that are no longer configured
    for leftover_id in scheduled_job_ids:
        scheduler.remove_job(leftover_id)
        logger.info(f"Removed orphaned scheduled job: {leftover_id}")


def _add_scheduled_job(scheduled: ScheduledBackup):
    """Add or replace a backup job in the scheduler."""
    trigger = CronTrigger.from_crontab(scheduled.schedule, timezone=app_config.SCHEDULER_TIMEZONE)

    scheduler.add_job(
        func=_execute_backup_wrapper,
        args=[scheduled.name],
        trigger=trigger,
        id=f"backup_{scheduled.name}",
        name=f"Backup: {scheduled.name}",
        replace_existing=True
    )

    logger.info(f"Scheduled backup job: {scheduled.name} ({scheduled.schedule})")


def _update_scheduled_job(scheduled: ScheduledBackup):
    """Reschedule an existing backup job with its current cron expression."""
    job_id = f"backup_{scheduled.name}"
    trigger = CronTrigger.from_crontab(scheduled.schedule, timezone=app_config.SCHEDULER_TIMEZONE)

    scheduler.reschedule_job(job_id, trigger=trigger)
    scheduler.modify_job(job_id, name=f"Backup: {scheduled.name}")

    logger.info(f"Updated scheduled backup job: {scheduled.name} ({scheduled.schedule})")


def _remove_scheduled_job(name: str):
    """Remove a backup job from the scheduler."""
    scheduler.remove_job(f"backup_{name}")
    logger.info(f"Removed scheduled backup job: {name}")


def _execute_backup_wrapper(name: str):
    """
    Wrapper function for executing backup jobs in scheduler context.

    Failures are logged and never propagate into the scheduler.
    """
    scheduled = backup_jobs.get(name)
    if scheduled is None:
        logger.error(f"Scheduled backup job not found: {name}")
        return

    try:
        logger.info(f"Scheduler executing backup job: {name}")
        result = BackupExecutor(scheduled.job, cfg=app_config).execute()
        logger.info(f"Backup job {name} completed with status: {result.status.value}")
    except Exception as e:
        logger.exception(f"Scheduler backup job {name} failed: {e}")


def trigger_backup_now(name: str):
    """
    Manually trigger a backup job immediately.

    Raises:
        ValueError: If job not found
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized")

    if name not in backup_jobs:
        raise ValueError(f"Backup job not found: {name}")

    now = datetime.now(timezone.utc)
    scheduler.add_job(
        func=_execute_backup_wrapper,
        args=[name],
        trigger=DateTrigger(run_date=now + timedelta(seconds=1)),
        id=f"manual_{name}_{int(now.timestamp())}",
        name=f"Manual: {name}",
        replace_existing=False
    )

    logger.info(f"Manually triggered backup job: {name}")


def get_scheduled_jobs() -> list:
    """
    Get list of all scheduled jobs.

    Returns:
        List of dicts with job information
    """
    if scheduler is None:
        return []

    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run': _next_run(job),
            'trigger': str(job.trigger)
        }
        for job in scheduler.get_jobs()
    ]


def _next_run(job):
    # Jobs added before the scheduler starts have no next_run_time yet
    next_run_time = getattr(job, 'next_run_time', None)
    return next_run_time.isoformat() if next_run_time else None
