"""
Batch Module

Chunk-oriented batch execution:
- Reader / processor / writer components run in transactional chunks
- Fault-tolerance policy (bounded retry, bounded skip, fatal errors)
- Job repository and launcher recording every run's status
"""

from processing.batch.errors import (
    BatchError,
    JobExecutionAlreadyRunningError,
    JobInstanceAlreadyCompleteError,
    RetryLimitExceededError,
    SkipLimitExceededError,
)
from processing.batch.launcher import Job, JobLauncher
from processing.batch.policy import ErrorAction, FaultTolerancePolicy
from processing.batch.repository import JobRepository
from processing.batch.step import (
    ChunkOrientedStep,
    ItemProcessor,
    ItemReader,
    ItemStream,
    ItemWriter,
    StepExecution,
)

__all__ = [
    "BatchError",
    "ChunkOrientedStep",
    "ErrorAction",
    "FaultTolerancePolicy",
    "ItemProcessor",
    "ItemReader",
    "ItemStream",
    "ItemWriter",
    "Job",
    "JobExecutionAlreadyRunningError",
    "JobInstanceAlreadyCompleteError",
    "JobLauncher",
    "JobRepository",
    "RetryLimitExceededError",
    "SkipLimitExceededError",
    "StepExecution",
]
