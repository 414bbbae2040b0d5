"""
Wiring of the Saramin harvest job.
"""

from typing import Optional

from sqlalchemy.orm import Session

from config.settings import settings
from processing.batch.launcher import Job
from processing.batch.policy import FaultTolerancePolicy
from processing.batch.step import ChunkOrientedStep
from processing.harvest.processor import CompanyDetailProcessor
from processing.harvest.reader import CompanyCodeReader, SqlCursorStore
from processing.harvest.repository import CompanyRepository
from processing.harvest.writer import CompanyMergeWriter

STEP_NAME = "saraminStep"

# Parameter naming the logical run; a recovered run keeps it
RUN_DATE_KEY = "run_date"


def cursor_key(job_name: str, parameters: dict) -> str:
    """Cursor key shared by a run and its recoveries."""
    run_date = parameters.get(RUN_DATE_KEY)
    return f"{job_name}:{run_date}" if run_date else job_name


def default_policy() -> FaultTolerancePolicy:
    """Fault-tolerance policy selected by the FAULT_TOLERANT setting."""
    if not settings.FAULT_TOLERANT:
        return FaultTolerancePolicy.simple()
    return FaultTolerancePolicy(
        retry_limit=settings.RETRY_LIMIT,
        skip_limit=settings.SKIP_LIMIT,
    )


def build_harvest_job(
    source,
    job_name: str = settings.HARVEST_JOB_NAME,
    max_page: int = settings.HARVEST_MAX_PAGE,
    chunk_size: int = settings.CHUNK_SIZE,
    threshold: float = settings.ADDRESS_MATCH_THRESHOLD,
    policy: Optional[FaultTolerancePolicy] = None,
    incrementer: bool = settings.RUN_ID_INCREMENTER,
) -> Job:
    """
    Build the harvest job.

    Args:
        source: Listing and detail source (SaraminScraper in production)
        job_name: Job name recorded in the job repository
        max_page: Last listing page to read
        chunk_size: Codes per chunk transaction
        threshold: Address similarity a merge must exceed
        policy: Fault-tolerance policy (defaults from settings)
        incrementer: Add an incrementing run.id to new parameter sets
    """
    policy = policy or default_policy()

    def build_step(db: Session, parameters: dict) -> ChunkOrientedStep:
        reader = CompanyCodeReader(
            source=source,
            store=SqlCursorStore(db),
            cursor_key=cursor_key(job_name, parameters),
            max_page=max_page,
        )
        processor = CompanyDetailProcessor(source)
        writer = CompanyMergeWriter(CompanyRepository(db), threshold=threshold)
        return ChunkOrientedStep(
            STEP_NAME,
            reader,
            processor,
            writer,
            db,
            chunk_size=chunk_size,
            policy=policy,
        )

    return Job(name=job_name, step_factory=build_step, incrementer=incrementer)
