"""
Merge writer: folds fresh extractions into existing company rows.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from config.logging import get_logger
from processing.batch.step import ItemStream, ItemWriter
from processing.harvest.repository import CompanyRepository
from processing.models import CompanyRecord
from processing.similarity import address_similarity

logger = get_logger("harvest.writer")


@dataclass
class MergeStats:
    """Outcome counts of the merge writer."""
    updated: int = 0
    inserted: int = 0
    folded: int = 0     # merged into another new record of the same chunk
    failed: int = 0

    def add(self, other: "MergeStats") -> None:
        self.updated += other.updated
        self.inserted += other.inserted
        self.folded += other.folded
        self.failed += other.failed


class CompanyMergeWriter(ItemWriter, ItemStream):
    """
    Writes a chunk of CompanyRecords without duplicating companies.

    For each record:
    1. Load rows with exactly the same company name (plus records already
       queued for insert from this chunk)
    2. Score address similarity against each
    3. Best score above the threshold: update that row in place
    4. Otherwise queue the record for the chunk's single batched insert

    Each record merge runs inside its own SAVEPOINT, so a store error costs only
    that record. A failed batched insert is logged and leaves the chunk's
    updates in place. Run totals in ``stats`` count committed chunks only.
    """

    def __init__(
        self,
        repository: CompanyRepository,
        threshold: float = 0.7,
        scorer: Callable[[str, str], float] = address_similarity,
    ):
        """
        Initialize the writer.

        Args:
            repository: Company store for this run's session
            threshold: Address similarity (0-1) a match must exceed
            scorer: Address similarity function
        """
        self.repository = repository
        self.threshold = threshold
        self.scorer = scorer
        self.stats = MergeStats()
        # Counts of the chunk written but not yet committed
        self._pending = MergeStats()

    def write(self, items: list[CompanyRecord]) -> MergeStats:
        chunk_stats = MergeStats()
        new_items: list[CompanyRecord] = []

        for item in items:
            try:
                with self.repository.db.begin_nested():
                    self._merge(item, new_items, chunk_stats)
            except SQLAlchemyError as e:
                chunk_stats.failed += 1
                logger.error(f"Error while writing data to database for company: {item.company}: {e}")

        # Only new companies are saved in one batch
        if new_items:
            try:
                with self.repository.db.begin_nested():
                    self.repository.save_all(new_items)
                chunk_stats.inserted += len(new_items)
                logger.info(f"Saved new company data. Count: {len(new_items)}")
            except SQLAlchemyError as e:
                chunk_stats.failed += len(new_items)
                logger.error(f"Error while saving new company data to database: {e}")

        # A retried chunk is written again from scratch
        self._pending = chunk_stats
        return chunk_stats

    def _merge(self, item: CompanyRecord, new_items: list[CompanyRecord], stats: MergeStats) -> None:
        candidates = self.repository.find_by_company_name(item.company)
        candidates.extend(queued for queued in new_items if queued.company == item.company)

        match, score = self.best_match(item, candidates)
        if match is None:
            new_items.append(item)
            return

        match.update_from(item)
        if any(match is queued for queued in new_items):
            stats.folded += 1
            logger.info(f"Folded duplicate extraction into pending company: {item.company} (address similarity {score:.2f})")
        else:
            self.repository.save(match)
            stats.updated += 1
            logger.info(f"Updated existing company data: {item.company} (address similarity {score:.2f})")

    def after_commit(self) -> None:
        self.stats.add(self._pending)
        self._pending = MergeStats()

    def best_match(
        self, item: CompanyRecord, candidates: list[CompanyRecord]
    ) -> tuple[Optional[CompanyRecord], float]:
        """Highest-scoring candidate above the threshold, earliest on ties."""
        best: Optional[CompanyRecord] = None
        best_score = 0.0
        for candidate in candidates:
            score = self.scorer(candidate.address, item.address)
            if score > self.threshold and (best is None or score > best_score):
                best = candidate
                best_score = score
        return best, best_score

    def close(self, completed: bool) -> None:
        totals = (
            f"Merge totals: {self.stats.updated} updated, {self.stats.inserted} inserted, "
            f"{self.stats.folded} folded, {self.stats.failed} failed"
        )
        if completed:
            totals += f"; {self.repository.count()} companies stored"
        logger.info(totals)
