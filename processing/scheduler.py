"""
APScheduler-based timer triggers for the harvest job.

Schedule (SCHEDULER_TIMEZONE, crontab syntax from settings)
-------------------------------------------------------------
  harvest_full_run  : FULL_RUN_CRON, default 04:00 every Saturday
  harvest_recovery  : RECOVERY_CRON, default 02:00 every day

Both call the RunCoordinator; neither lets an exception escape into the
scheduler. Outcomes are visible in the log and the job repository, which
the recovery trigger inspects on its next cycle.
"""

from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger

from config.logging import get_logger
from config.settings import settings
from processing.harvest.coordinator import RunCoordinator

logger = get_logger("scheduler")


def run_scheduled_harvest(coordinator: RunCoordinator) -> None:
    """Weekly full run."""
    logger.info("Scheduler: harvest_full_run starting")
    try:
        status = coordinator.run_now()
        logger.info(f"Scheduler: harvest_full_run finished with status {status.value}")
    except Exception as exc:  # noqa: BLE001
        logger.error(f"Scheduler: harvest_full_run failed: {exc}", exc_info=True)


def run_scheduled_recovery(coordinator: RunCoordinator) -> None:
    """Daily recovery of the latest failed run."""
    logger.info("Scheduler: harvest_recovery starting")
    coordinator.recover_or_run()
    logger.info("Scheduler: harvest_recovery complete")


def build_scheduler(
    coordinator: RunCoordinator,
    scheduler: Optional[BaseScheduler] = None,
) -> BaseScheduler:
    """
    Register the harvest triggers.

    Returns a configured but *not yet started* scheduler (a
    ``BackgroundScheduler`` unless one is passed in). The caller must call
    ``.start()`` and ``.shutdown(wait=True)`` at the appropriate points.
    """
    timezone = settings.SCHEDULER_TIMEZONE
    scheduler = scheduler or BackgroundScheduler(timezone=timezone)

    scheduler.add_job(
        run_scheduled_harvest,
        trigger=CronTrigger.from_crontab(settings.FULL_RUN_CRON, timezone=timezone),
        args=[coordinator],
        id="harvest_full_run",
        name="Weekly Saramin harvest",
        replace_existing=True,
        misfire_grace_time=3600,
        coalesce=True,
        max_instances=1,
    )
    scheduler.add_job(
        run_scheduled_recovery,
        trigger=CronTrigger.from_crontab(settings.RECOVERY_CRON, timezone=timezone),
        args=[coordinator],
        id="harvest_recovery",
        name="Daily harvest recovery",
        replace_existing=True,
        misfire_grace_time=3600,
        coalesce=True,
        max_instances=1,
    )

    return scheduler
