"""
Persistence of job instances and executions.

Doubles as the read-side explorer used by the run coordinator to find
failed runs.
"""

import hashlib
import json
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from processing.models import BatchStatus, JobExecution, JobInstance

RUN_ID_KEY = "run.id"


def job_key(parameters: dict) -> str:
    """Stable hash of a parameter set; identifies a job instance."""
    payload = json.dumps(parameters, sort_keys=True, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class JobRepository:
    """Reads and writes job bookkeeping through one session."""

    def __init__(self, db: Session):
        self.db = db

    # Instances

    def find_job_instance(self, job_name: str, parameters: dict) -> Optional[JobInstance]:
        return self.db.scalars(
            select(JobInstance).where(
                JobInstance.job_name == job_name,
                JobInstance.job_key == job_key(parameters),
            )
        ).first()

    def create_job_instance(self, job_name: str, parameters: dict) -> JobInstance:
        instance = JobInstance(job_name=job_name, job_key=job_key(parameters))
        self.db.add(instance)
        self.db.commit()
        return instance

    def find_job_instances_by_job_name(
        self, job_name: str, offset: int = 0, limit: int = 100
    ) -> list[JobInstance]:
        """Most recent instances first."""
        return list(
            self.db.scalars(
                select(JobInstance)
                .where(JobInstance.job_name == job_name)
                .order_by(JobInstance.id.desc())
                .offset(offset)
                .limit(limit)
            )
        )

    # Executions

    def create_job_execution(self, instance: JobInstance, parameters: dict) -> JobExecution:
        execution = JobExecution(
            instance_id=instance.id,
            job_name=instance.job_name,
            status=BatchStatus.STARTING,
            parameters=dict(parameters),
        )
        self.db.add(execution)
        self.db.commit()
        return execution

    def update(self, execution: JobExecution) -> None:
        self.db.add(execution)
        self.db.commit()

    def get_job_executions(self, instance: JobInstance) -> list[JobExecution]:
        """Executions of one instance, most recent first."""
        return list(
            self.db.scalars(
                select(JobExecution)
                .where(JobExecution.instance_id == instance.id)
                .order_by(JobExecution.id.desc())
            )
        )

    def find_executions_by_job_name(
        self, job_name: str, offset: int = 0, limit: int = 100
    ) -> list[JobExecution]:
        """Most recent executions first."""
        return list(
            self.db.scalars(
                select(JobExecution)
                .where(JobExecution.job_name == job_name)
                .order_by(JobExecution.id.desc())
                .offset(offset)
                .limit(limit)
            )
        )

    def find_running_executions(self, job_name: str) -> list[JobExecution]:
        return list(
            self.db.scalars(
                select(JobExecution).where(
                    JobExecution.job_name == job_name,
                    JobExecution.status.in_([BatchStatus.STARTING, BatchStatus.RUNNING]),
                )
            )
        )

    def abandon_stale_executions(self, job_name: str, started_before: datetime) -> list[JobExecution]:
        """
        Mark executions still RUNNING since before the cutoff as FAILED.

        Their process died without recording an outcome; failing them makes
        the run recoverable and unblocks new launches.
        """
        stale = [
            execution
            for execution in self.find_running_executions(job_name)
            if (execution.start_time or execution.created_at) < started_before
        ]
        for execution in stale:
            execution.exit_message = (
                f"Abandoned: still {execution.status.value} since {execution.start_time}"
            )
            execution.status = BatchStatus.FAILED
            execution.end_time = datetime.now()
        if stale:
            self.db.commit()
        return stale

    def last_run_id(self, job_name: str) -> int:
        """Highest run.id among the job's recent executions, 0 if none."""
        run_ids = [
            int(execution.parameters.get(RUN_ID_KEY, 0))
            for execution in self.find_executions_by_job_name(job_name, 0, 100)
            if execution.parameters
        ]
        return max(run_ids, default=0)
