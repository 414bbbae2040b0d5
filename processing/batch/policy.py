"""
Fault-tolerance policy for chunk-oriented steps.
"""

from dataclasses import dataclass
from enum import Enum

from sqlalchemy.exc import OperationalError, SQLAlchemyError


class ErrorAction(Enum):
    """What a step does with an exception."""
    RETRY = "retry"
    SKIP = "skip"
    FAIL = "fail"


@dataclass(frozen=True)
class FaultTolerancePolicy:
    """
    Classifies step errors into retry / skip / fail.

    Classification order:
    1. no_skip_on - contract violations, always fatal
    2. retry_on - transient store errors, retried up to retry_limit attempts
    3. skip_on - per-item I/O failures, dropped up to skip_limit per run
    4. anything else is fatal

    tolerate_processing_errors turns on the lenient variant where a failing
    process() call is logged and its item dropped without counting.
    """

    retry_on: tuple[type[BaseException], ...] = (OperationalError, SQLAlchemyError)
    retry_limit: int = 3
    # requests.RequestException subclasses OSError
    skip_on: tuple[type[BaseException], ...] = (OSError,)
    no_skip_on: tuple[type[BaseException], ...] = (ValueError, TypeError, AttributeError)
    skip_limit: int = 100
    tolerate_processing_errors: bool = False

    def __post_init__(self):
        if self.retry_limit < 1:
            raise ValueError("retry_limit must be at least 1")
        if self.skip_limit < 0:
            raise ValueError("skip_limit must not be negative")

    @classmethod
    def simple(cls) -> "FaultTolerancePolicy":
        """No retries and no skip tracking; processing errors are logged."""
        return cls(
            retry_on=(),
            retry_limit=1,
            skip_on=(),
            skip_limit=0,
            tolerate_processing_errors=True,
        )

    def classify(self, error: BaseException) -> ErrorAction:
        if isinstance(error, self.no_skip_on):
            return ErrorAction.FAIL
        if isinstance(error, self.retry_on):
            return ErrorAction.RETRY
        if isinstance(error, self.skip_on):
            return ErrorAction.SKIP
        return ErrorAction.FAIL

    def is_retryable(self, error: BaseException) -> bool:
        return self.classify(error) is ErrorAction.RETRY

    def is_skippable(self, error: BaseException) -> bool:
        return self.classify(error) is ErrorAction.SKIP
