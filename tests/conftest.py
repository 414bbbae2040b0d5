"""
Shared fixtures: an in-memory company store and stub Saramin sources.
"""

import sys
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from processing.database import create_db_engine
from processing.models import Base, CompanyRecord


class FakeSaraminSource:
    """
    Listing + detail source serving canned data.

    pages maps page number -> company codes; pages not listed are empty.
    details maps code -> CompanyRecord kwargs; unknown codes raise OSError.
    """

    def __init__(self, pages: dict, details: dict = None):
        self.pages = pages
        self.details = details or {}
        self.listing_calls = []
        self.detail_calls = []
        self.listing_failures = {}

    def fail_listing(self, page: int, times: int = 1):
        """Make the next ``times`` fetches of ``page`` raise OSError."""
        self.listing_failures[page] = times

    def fetch_company_codes(self, page: int) -> list[str]:
        self.listing_calls.append(page)
        if self.listing_failures.get(page, 0) > 0:
            self.listing_failures[page] -= 1
            raise OSError(f"listing page {page} unreachable")
        return list(self.pages.get(page, []))

    def fetch_company(self, code: str) -> CompanyRecord:
        self.detail_calls.append(code)
        if code not in self.details:
            raise OSError(f"company page {code} unreachable")
        return CompanyRecord.of(source_code=code, **self.details[code])


@pytest.fixture()
def engine():
    """Fresh in-memory database per test."""
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()
