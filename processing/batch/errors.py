"""
Exceptions raised by the batch framework.
"""

from typing import Optional


class BatchError(Exception):
    """Base class for batch framework errors."""


class SkipLimitExceededError(BatchError):
    """More items were skipped than the run tolerates."""

    def __init__(self, skip_limit: int, cause: BaseException):
        self.skip_limit = skip_limit
        self.cause = cause
        super().__init__(
            f"Skip limit of {skip_limit} exceeded; last error: {cause!r}"
        )


class RetryLimitExceededError(BatchError):
    """An operation kept failing with a retryable error."""

    def __init__(self, operation: str, attempts: int, cause: BaseException):
        self.operation = operation
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"{operation} failed after {attempts} attempts; last error: {cause!r}"
        )


class JobExecutionAlreadyRunningError(BatchError):
    """Another execution of the same job is still running."""

    def __init__(self, job_name: str, execution_id: Optional[int] = None):
        self.job_name = job_name
        self.execution_id = execution_id
        super().__init__(
            f"Job '{job_name}' already has a running execution (id={execution_id})"
        )


class JobInstanceAlreadyCompleteError(BatchError):
    """The job instance for these parameters already completed."""

    def __init__(self, job_name: str, parameters: dict):
        self.job_name = job_name
        self.parameters = parameters
        super().__init__(
            f"Job '{job_name}' already completed for parameters {parameters}"
        )
