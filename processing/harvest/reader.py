"""
Resumable reader of company codes from the paginated listing.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Optional

from sqlalchemy.orm import Session

from config.logging import get_logger
from processing.batch.step import ItemReader, ItemStream
from processing.models import CrawlCursorState

logger = get_logger("harvest.reader")


@dataclass(frozen=True)
class CrawlCursor:
    """
    Position in the listing.

    current_page is the next page to fetch; codes holds the last fetched
    page and next_index the first of its codes not yet read.
    """
    current_page: int = 1
    max_page: int = 100
    next_index: int = 0
    codes: tuple[str, ...] = ()

    @property
    def has_buffered(self) -> bool:
        return self.next_index < len(self.codes)

    @property
    def is_past_last_page(self) -> bool:
        return self.current_page > self.max_page

    def with_page(self, codes: list[str]) -> "CrawlCursor":
        """Cursor after fetching current_page with the given codes."""
        return replace(
            self,
            current_page=self.current_page + 1,
            next_index=0,
            codes=tuple(codes),
        )

    def advance(self) -> tuple[str, "CrawlCursor"]:
        """Return the next buffered code and the cursor past it."""
        if not self.has_buffered:
            raise IndexError("cursor has no buffered codes")
        code = self.codes[self.next_index]
        return code, replace(self, next_index=self.next_index + 1)


class CursorStore(ABC):
    """Where a reader keeps its cursor between runs."""

    @abstractmethod
    def load(self, key: str) -> Optional[CrawlCursor]:
        ...

    @abstractmethod
    def save(self, key: str, cursor: CrawlCursor) -> None:
        ...

    @abstractmethod
    def clear(self, key: str) -> None:
        ...


class InMemoryCursorStore(CursorStore):
    """Process-local store, for tests and dry runs."""

    def __init__(self):
        self.cursors: dict[str, CrawlCursor] = {}

    def load(self, key: str) -> Optional[CrawlCursor]:
        return self.cursors.get(key)

    def save(self, key: str, cursor: CrawlCursor) -> None:
        self.cursors[key] = cursor

    def clear(self, key: str) -> None:
        self.cursors.pop(key, None)


class SqlCursorStore(CursorStore):
    """
    Store backed by the crawl_cursors table.

    Writes go through the given session without committing, so the saved
    cursor commits or rolls back together with the chunk that read it.
    """

    def __init__(self, db: Session):
        self.db = db

    def load(self, key: str) -> Optional[CrawlCursor]:
        state = self.db.get(CrawlCursorState, key)
        if state is None:
            return None
        return CrawlCursor(
            current_page=state.current_page,
            max_page=state.max_page,
            next_index=state.next_index,
            codes=tuple(state.codes or ()),
        )

    def save(self, key: str, cursor: CrawlCursor) -> None:
        state = self.db.get(CrawlCursorState, key)
        if state is None:
            state = CrawlCursorState(cursor_key=key)
            self.db.add(state)
        state.current_page = cursor.current_page
        state.max_page = cursor.max_page
        state.next_index = cursor.next_index
        state.codes = list(cursor.codes)
        self.db.flush()

    def clear(self, key: str) -> None:
        state = self.db.get(CrawlCursorState, key)
        if state is not None:
            self.db.delete(state)
            self.db.flush()


class CompanyCodeReader(ItemReader, ItemStream):
    """
    Reads company codes page by page, resuming from a saved cursor.

    The listing source only needs ``fetch_company_codes(page) -> list[str]``.
    A fetch error propagates and leaves the saved cursor untouched; an empty
    page or passing max_page ends the stream.

    Usage:
        reader = CompanyCodeReader(scraper, SqlCursorStore(db), "saraminJob:2024-06-01")
        while (code := reader.read()) is not None:
            ...
    """

    def __init__(self, source, store: CursorStore, cursor_key: str, max_page: int = 100):
        """
        Initialize the reader.

        Args:
            source: Listing source with fetch_company_codes(page)
            store: Cursor persistence
            cursor_key: Key of this run's cursor in the store
            max_page: Last listing page to fetch
        """
        self.source = source
        self.store = store
        self.cursor_key = cursor_key
        self.max_page = max_page
        self._cursor: Optional[CrawlCursor] = None
        self._exhausted = False

    @property
    def cursor(self) -> Optional[CrawlCursor]:
        return self._cursor

    def open(self) -> None:
        saved = self.store.load(self.cursor_key)
        if saved is None:
            self._cursor = CrawlCursor(max_page=self.max_page)
        else:
            self._cursor = replace(saved, max_page=self.max_page)
            logger.info(
                f"Resuming from saved cursor {self.cursor_key}: "
                f"page {saved.current_page}, index {saved.next_index}/{len(saved.codes)}"
            )
        self._exhausted = False

    def read(self) -> Optional[str]:
        if self._cursor is None:
            self.open()
        if self._exhausted:
            return None

        cursor = self._cursor
        if not cursor.has_buffered:
            if cursor.is_past_last_page:
                logger.info(
                    f"No more company codes to read. Current page: {cursor.current_page}, "
                    f"Max page: {cursor.max_page}"
                )
                self._exhausted = True
                return None

            logger.info(f"Fetching company codes from page: {cursor.current_page}")
            codes = self.source.fetch_company_codes(cursor.current_page)
            if not codes:
                logger.warning(f"No company codes found on page: {cursor.current_page}")
                self._exhausted = True
                return None
            cursor = cursor.with_page(codes)

        code, cursor = cursor.advance()
        self.store.save(self.cursor_key, cursor)
        self._cursor = cursor
        return code

    def update(self) -> None:
        if self._cursor is not None:
            self.store.save(self.cursor_key, self._cursor)

    def close(self, completed: bool) -> None:
        if completed:
            self.store.clear(self.cursor_key)
            logger.info(f"Cleared cursor {self.cursor_key}")
