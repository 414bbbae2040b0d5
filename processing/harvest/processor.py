"""
Detail fetcher: turns a company code into a CompanyRecord.
"""

from typing import Optional

from config.logging import get_logger
from processing.batch.step import ItemProcessor, ItemStream
from processing.models import CompanyRecord

logger = get_logger("harvest.processor")


class CompanyDetailProcessor(ItemProcessor, ItemStream):
    """
    Fetches and parses one company page per code.

    The detail source only needs ``fetch_company(code) -> CompanyRecord``.
    Any failure drops the record (returns None) instead of failing the
    chunk; missing fields are already placeholders from the parser.
    """

    def __init__(self, source):
        self.source = source
        self.failures = 0

    def process(self, code: str) -> Optional[CompanyRecord]:
        try:
            return self.source.fetch_company(code)
        except Exception as e:
            self.failures += 1
            logger.error(f"Error while processing company code: {code}: {e}")
            return None

    def close(self, completed: bool) -> None:
        if self.failures:
            logger.warning(f"Dropped {self.failures} companies whose page could not be fetched or parsed")
