"""
Harvest Module

Saramin company harvest job:
- Resumable listing reader (company codes, page by page)
- Detail processor (company page -> CompanyRecord)
- Merge writer (exact name + fuzzy address deduplication)
- Run coordinator (run now / recover last failed run)
"""

from processing.harvest.coordinator import RunCoordinator, describe
from processing.harvest.job import build_harvest_job
from processing.harvest.processor import CompanyDetailProcessor
from processing.harvest.reader import (
    CompanyCodeReader,
    CrawlCursor,
    CursorStore,
    InMemoryCursorStore,
    SqlCursorStore,
)
from processing.harvest.repository import CompanyRepository
from processing.harvest.writer import CompanyMergeWriter, MergeStats

__all__ = [
    "CompanyCodeReader",
    "CompanyDetailProcessor",
    "CompanyMergeWriter",
    "CompanyRepository",
    "CrawlCursor",
    "CursorStore",
    "InMemoryCursorStore",
    "MergeStats",
    "RunCoordinator",
    "SqlCursorStore",
    "build_harvest_job",
    "describe",
]
