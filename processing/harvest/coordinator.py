"""
Run coordinator: the entry points the triggers call.

- run_now(): one fresh run, returns its final status
- recover_or_run(): rerun the latest recent failure, or a fresh run
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import sessionmaker

from config.logging import get_logger
from config.settings import settings
from processing.batch.launcher import Job, JobLauncher
from processing.batch.repository import JobRepository
from processing.database import SessionLocal, session_scope
from processing.harvest.job import RUN_DATE_KEY
from processing.models import BatchStatus, JobExecution

logger = get_logger("harvest.coordinator")

# Parameter that makes each launch distinct
TIME_KEY = "time"


def describe(status: BatchStatus) -> str:
    """Status string returned to manual triggers."""
    return f"Job status: {status.value}"


class RunCoordinator:
    """
    Decides job parameters and launches the harvest job.

    Recovery resumes a failed run by relaunching with that run's
    parameters and a new ``time`` value; the unchanged ``run_date`` keeps
    the failed run's saved cursor.
    """

    def __init__(
        self,
        job: Job,
        launcher: Optional[JobLauncher] = None,
        session_factory: sessionmaker = SessionLocal,
        lookback: timedelta = timedelta(hours=settings.RECOVERY_LOOKBACK_HOURS),
        clock: Callable[[], datetime] = datetime.now,
        instance_scan_limit: int = 100,
    ):
        """
        Initialize the coordinator.

        Args:
            job: Job to launch
            launcher: Job launcher (defaults to one on session_factory)
            session_factory: Sessions for reading run history
            lookback: How far back a failed run is still recovered
            clock: Current time source
            instance_scan_limit: Most recent job instances inspected for failures
        """
        self.job = job
        self.session_factory = session_factory
        self.launcher = launcher or JobLauncher(session_factory=session_factory, clock=clock)
        self.lookback = lookback
        self.clock = clock
        self.instance_scan_limit = instance_scan_limit

    def _millis(self) -> int:
        return int(self.clock().timestamp() * 1000)

    def fresh_parameters(self) -> dict:
        return {
            RUN_DATE_KEY: self.clock().isoformat(),
            TIME_KEY: self._millis(),
        }

    def run_now(self) -> BatchStatus:
        """Launch one fresh run and return its final status."""
        parameters = self.fresh_parameters()
        logger.info(f"Starting job with parameters: {parameters}")

        execution = self.launcher.run(self.job, parameters)

        logger.info(f"Job finished with status: {execution.status.value}")
        return execution.status

    def find_latest_failed_execution(self) -> Optional[JobExecution]:
        """Most recently started FAILED execution inside the lookback window."""
        cutoff = self.clock() - self.lookback

        with session_scope(self.session_factory) as db:
            repository = JobRepository(db)
            instances = repository.find_job_instances_by_job_name(
                self.job.name, 0, self.instance_scan_limit
            )
            failed = [
                execution
                for instance in instances
                for execution in repository.get_job_executions(instance)
                if execution.status == BatchStatus.FAILED
                and execution.start_time is not None
                and execution.start_time > cutoff
            ]
            if not failed:
                return None

            latest = max(failed, key=lambda execution: execution.start_time)
            db.expunge(latest)
            return latest

    def recover_or_run(self) -> None:
        """
        Relaunch the latest recent failed run, or start a fresh one.

        Never raises; failures end up in the log and the job repository.
        """
        try:
            latest_failed = self.find_latest_failed_execution()

            if latest_failed is not None:
                logger.info(f"Restarting failed job: {latest_failed.id}")
                parameters = {**latest_failed.parameters, TIME_KEY: self._millis()}
                self.launcher.run(self.job, parameters)
                return

            logger.info("No failed run to recover, starting a fresh run")
            self.launcher.run(self.job, self.fresh_parameters())

        except Exception as e:  # noqa: BLE001
            logger.error(f"Job execution failed: {e}", exc_info=True)
