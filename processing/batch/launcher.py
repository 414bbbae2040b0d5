"""
Job definition and launcher.

The launcher owns the bookkeeping around a step run: it refuses
concurrent executions of one job, resolves the job instance for the
parameters, records the execution's status transitions and copies the
step counters onto the execution row.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session, sessionmaker

from config.logging import get_logger
from config.settings import settings
from processing.batch.errors import (
    JobExecutionAlreadyRunningError,
    JobInstanceAlreadyCompleteError,
)
from processing.batch.repository import RUN_ID_KEY, JobRepository
from processing.batch.step import ChunkOrientedStep, StepExecution
from processing.database import SessionLocal, session_scope
from processing.models import BatchStatus, JobExecution

logger = get_logger("batch.launcher")

# Builds the step for one run from the run's session and parameters
StepFactory = Callable[[Session, dict], ChunkOrientedStep]


@dataclass
class Job:
    """A named single-step job."""
    name: str
    step_factory: StepFactory
    # Give every parameter set without a run.id the next one
    incrementer: bool = False


class JobLauncher:
    """
    Runs jobs synchronously and records each run as a JobExecution.

    At most one execution per job name runs at a time: within this process
    via a per-job lock, across processes via the RUNNING rows in the job
    repository.
    """

    _locks: dict[str, threading.Lock] = {}
    _locks_guard = threading.Lock()

    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        stale_after: timedelta = timedelta(hours=settings.STALE_EXECUTION_HOURS),
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.session_factory = session_factory
        self.stale_after = stale_after
        self.clock = clock

    @classmethod
    def _lock_for(cls, job_name: str) -> threading.Lock:
        with cls._locks_guard:
            return cls._locks.setdefault(job_name, threading.Lock())

    def run(self, job: Job, parameters: dict) -> JobExecution:
        """
        Launch one execution of ``job`` and block until it ends.

        Returns the detached, fully loaded JobExecution.

        Raises:
            JobExecutionAlreadyRunningError: another execution of the job is active
            JobInstanceAlreadyCompleteError: these parameters already completed
        """
        lock = self._lock_for(job.name)
        if not lock.acquire(blocking=False):
            raise JobExecutionAlreadyRunningError(job.name)

        try:
            with session_scope(self.session_factory) as db:
                repository = JobRepository(db)
                execution = self._create_execution(repository, job, dict(parameters))
                self._execute(db, repository, job, execution)
                db.refresh(execution)
                db.expunge(execution)
                return execution
        finally:
            lock.release()

    def _create_execution(self, repository: JobRepository, job: Job, parameters: dict) -> JobExecution:
        for stale in repository.abandon_stale_executions(job.name, self.clock() - self.stale_after):
            logger.warning(f"Marked stale execution {stale.id} of job [{job.name}] as FAILED")

        running = repository.find_running_executions(job.name)
        if running:
            raise JobExecutionAlreadyRunningError(job.name, running[0].id)

        if job.incrementer and RUN_ID_KEY not in parameters:
            parameters[RUN_ID_KEY] = repository.last_run_id(job.name) + 1

        instance = repository.find_job_instance(job.name, parameters)
        if instance is None:
            instance = repository.create_job_instance(job.name, parameters)
        elif any(e.status == BatchStatus.COMPLETED for e in instance.executions):
            raise JobInstanceAlreadyCompleteError(job.name, parameters)
        else:
            logger.info(f"Restarting job instance {instance.id} of [{job.name}]")

        return repository.create_job_execution(instance, parameters)

    def _execute(self, db: Session, repository: JobRepository, job: Job, execution: JobExecution) -> None:
        execution.status = BatchStatus.RUNNING
        execution.start_time = self.clock()
        repository.update(execution)
        logger.info(f"Job: [{job.name}] launched with the following parameters: [{execution.parameters}]")

        try:
            step = job.step_factory(db, execution.parameters)
            step.chunk_listener = lambda progress: self._record_progress(repository, execution, progress)
            step_execution = step.execute()
        except KeyboardInterrupt:
            db.rollback()
            self._finish(repository, execution, BatchStatus.STOPPED, "Interrupted")
            raise
        except Exception as e:
            # Raised while building the step
            db.rollback()
            logger.error(f"Job [{job.name}] could not run: {e}", exc_info=True)
            self._finish(repository, execution, BatchStatus.FAILED, f"{type(e).__name__}: {e}")
            return

        self._copy_counters(execution, step_execution)
        self._finish(repository, execution, step_execution.status, step_execution.exit_message)
        duration = execution.end_time - execution.start_time
        logger.info(
            f"Job: [{job.name}] completed with the following parameters: [{execution.parameters}] "
            f"and the following status: [{execution.status.value}] in {duration}"
        )

    def _record_progress(self, repository: JobRepository, execution: JobExecution, progress: StepExecution) -> None:
        self._copy_counters(execution, progress)
        repository.update(execution)

    def _finish(self, repository: JobRepository, execution: JobExecution, status: BatchStatus, message: Optional[str]) -> None:
        execution.status = status
        execution.exit_message = message
        execution.end_time = self.clock()
        repository.update(execution)

    @staticmethod
    def _copy_counters(execution: JobExecution, step_execution: StepExecution) -> None:
        execution.read_count = step_execution.read_count
        execution.write_count = step_execution.write_count
        execution.filter_count = step_execution.filter_count
        execution.skip_count = step_execution.skip_count
        execution.commit_count = step_execution.commit_count
        execution.rollback_count = step_execution.rollback_count
