"""
Chunk-oriented step execution.

A step reads items one at a time, processes each, and writes them in
chunks. Every chunk is one transaction on the step's session: the writes
and the reader's saved position commit together or roll back together.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from config.logging import get_logger
from processing.batch.errors import RetryLimitExceededError, SkipLimitExceededError
from processing.batch.policy import FaultTolerancePolicy
from processing.models import BatchStatus

logger = get_logger("batch.step")

# Marker for an item dropped by the skip policy
_SKIPPED = object()


class ItemReader(ABC):
    """Produces items one at a time; None signals end of input."""

    @abstractmethod
    def read(self) -> Optional[Any]:
        ...


class ItemProcessor(ABC):
    """Transforms one item; None filters it out of the chunk."""

    @abstractmethod
    def process(self, item: Any) -> Optional[Any]:
        ...


class ItemWriter(ABC):
    """Writes one chunk of processed items."""

    @abstractmethod
    def write(self, items: list) -> None:
        ...


class ItemStream:
    """
    Optional lifecycle hooks for step components with saved state.

    update() runs inside each chunk transaction right before commit;
    after_commit() runs once the chunk has committed.
    """

    def open(self) -> None:
        pass

    def update(self) -> None:
        pass

    def after_commit(self) -> None:
        pass

    def close(self, completed: bool) -> None:
        pass


@dataclass
class StepExecution:
    """Counters and outcome of one step run."""
    step_name: str
    status: BatchStatus = BatchStatus.STARTING
    read_count: int = 0
    write_count: int = 0
    filter_count: int = 0
    read_skip_count: int = 0
    process_skip_count: int = 0
    commit_count: int = 0
    rollback_count: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    exit_message: Optional[str] = None
    failure: Optional[BaseException] = field(default=None, repr=False)

    @property
    def skip_count(self) -> int:
        return self.read_skip_count + self.process_skip_count

    def log_summary(self):
        """Log summary statistics."""
        duration = (self.end_time - self.start_time).total_seconds() if self.end_time and self.start_time else 0
        logger.info("=" * 60)
        logger.info(f"STEP {self.step_name} {self.status.value}")
        logger.info("=" * 60)
        logger.info(f"Duration: {duration:.1f} seconds")
        logger.info(f"Read: {self.read_count}")
        logger.info(f"Written: {self.write_count}")
        logger.info(f"Filtered: {self.filter_count}")
        logger.info(f"Skipped: {self.skip_count} (read {self.read_skip_count}, process {self.process_skip_count})")
        logger.info(f"Commits: {self.commit_count}, rollbacks: {self.rollback_count}")
        if self.exit_message:
            logger.info(f"Exit message: {self.exit_message}")
        logger.info("=" * 60)


class ChunkOrientedStep:
    """
    Drives reader -> processor -> writer in fixed-size chunks.

    Fault tolerance follows the step's FaultTolerancePolicy:
    - retryable errors re-run the failing read, process or write up to
      retry_limit attempts, rolling the chunk transaction back in between
    - skippable errors from read or process drop that item, counted
      against skip_limit for the whole step
    - everything else fails the step; chunks committed before the failure
      stay committed

    Usage:
        step = ChunkOrientedStep("saraminStep", reader, processor, writer, db)
        execution = step.execute()
        if execution.status is BatchStatus.FAILED:
            ...
    """

    def __init__(
        self,
        name: str,
        reader: ItemReader,
        processor: ItemProcessor,
        writer: ItemWriter,
        db: Session,
        chunk_size: int = 100,
        policy: Optional[FaultTolerancePolicy] = None,
        chunk_listener: Optional[Callable[[StepExecution], None]] = None,
    ):
        """
        Initialize the step.

        Args:
            name: Step name used in logs
            reader: Item source
            processor: Per-item transformation
            writer: Chunk sink
            db: Session that owns the chunk transactions
            chunk_size: Items read per chunk
            policy: Fault-tolerance policy (defaults to retry 3 / skip 100)
            chunk_listener: Called with the running counters after each commit
        """
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")

        self.name = name
        self.reader = reader
        self.processor = processor
        self.writer = writer
        self.db = db
        self.chunk_size = chunk_size
        self.policy = policy or FaultTolerancePolicy()
        self.chunk_listener = chunk_listener

    @property
    def _streams(self) -> list[ItemStream]:
        return [
            component
            for component in (self.reader, self.processor, self.writer)
            if isinstance(component, ItemStream)
        ]

    def execute(self) -> StepExecution:
        """Run the step to completion or failure and return its execution."""
        execution = StepExecution(step_name=self.name, start_time=datetime.now())
        opened = False

        try:
            for stream in self._streams:
                stream.open()
            opened = True
            execution.status = BatchStatus.RUNNING
            logger.info(f"Executing step: [{self.name}] (chunk size {self.chunk_size})")

            finished = False
            while not finished:
                items, finished = self._read_and_process_chunk(execution)
                self._write_chunk(items, execution)
                if self.chunk_listener:
                    self.chunk_listener(execution)

            # Completed streams discard their saved state in one last transaction
            self._call_with_retry(
                "close",
                self._close_and_commit,
                on_retry=lambda: self._rollback(execution),
            )
            opened = False
            execution.status = BatchStatus.COMPLETED

        except Exception as e:
            self._rollback(execution)
            execution.status = BatchStatus.FAILED
            execution.failure = e
            execution.exit_message = f"{type(e).__name__}: {e}"
            logger.error(f"Step [{self.name}] failed: {e}", exc_info=True)

        finally:
            if opened:
                self._close_streams(completed=False)
            execution.end_time = datetime.now()

        execution.log_summary()
        return execution

    def _read_and_process_chunk(self, execution: StepExecution) -> tuple[list, bool]:
        """Fill one chunk; returns (processed items, end of input reached)."""
        items = []
        for _ in range(self.chunk_size):
            item = self._read(execution)
            if item is None:
                return items, True
            execution.read_count += 1

            result = self._process(item, execution)
            if result is _SKIPPED:
                continue
            if result is None:
                execution.filter_count += 1
                continue
            items.append(result)

        return items, False

    def _read(self, execution: StepExecution) -> Optional[Any]:
        # Skipped reads do not take a slot in the chunk
        while True:
            try:
                return self._call_with_retry(
                    "read", self.reader.read, on_retry=lambda: self._rollback(execution)
                )
            except Exception as e:
                self._skip(e, execution, phase="read")

    def _process(self, item: Any, execution: StepExecution) -> Any:
        try:
            return self._call_with_retry(
                "process",
                self.processor.process,
                item,
                on_retry=lambda: self._rollback(execution),
            )
        except Exception as e:
            if self.policy.tolerate_processing_errors and not isinstance(e, self.policy.no_skip_on):
                logger.error(f"Error while processing item {item!r}, dropping it: {e}")
                return None
            self._skip(e, execution, phase="process")
            return _SKIPPED

    def _write_chunk(self, items: list, execution: StepExecution) -> None:
        def write_and_commit():
            if items:
                self.writer.write(items)
            for stream in self._streams:
                stream.update()
            self.db.commit()

        self._call_with_retry(
            "write", write_and_commit, on_retry=lambda: self._rollback(execution)
        )
        for stream in self._streams:
            stream.after_commit()
        execution.write_count += len(items)
        execution.commit_count += 1
        logger.info(
            f"Committed chunk {execution.commit_count}: {len(items)} written, "
            f"{execution.read_count} read so far"
        )

    def _close_and_commit(self) -> None:
        self._close_streams(completed=True)
        self.db.commit()

    def _close_streams(self, completed: bool) -> None:
        for stream in self._streams:
            stream.close(completed)

    def _call_with_retry(self, operation: str, fn: Callable, *args, on_retry: Optional[Callable] = None):
        """Call fn, retrying retryable errors up to the policy's retry limit."""
        limit = self.policy.retry_limit
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn(*args)
            except Exception as e:
                if not self.policy.is_retryable(e):
                    raise
                if attempt >= limit:
                    raise RetryLimitExceededError(operation, attempt, e) from e
                logger.warning(f"{operation} failed (attempt {attempt}/{limit}), retrying: {e!r}")
                if on_retry:
                    on_retry()

    def _skip(self, error: Exception, execution: StepExecution, phase: str) -> None:
        """Count a skippable error against the skip budget, or re-raise it."""
        if not self.policy.is_skippable(error):
            raise error
        if execution.skip_count >= self.policy.skip_limit:
            raise SkipLimitExceededError(self.policy.skip_limit, error) from error

        if phase == "read":
            execution.read_skip_count += 1
        else:
            execution.process_skip_count += 1
        logger.warning(
            f"Skipped item during {phase} ({execution.skip_count}/{self.policy.skip_limit}): {error!r}"
        )

    def _rollback(self, execution: StepExecution) -> None:
        try:
            self.db.rollback()
        except Exception as e:
            logger.error(f"Rollback failed: {e}")
        execution.rollback_count += 1
