"""
Persistence of harvested company records.
"""

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from processing.models import CompanyRecord


class CompanyRepository:
    """
    Company store operations used by the merge writer.

    save() and save_all() flush immediately so that store errors surface
    inside the caller's savepoint rather than at chunk commit.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_by_company_name(self, company: str) -> list[CompanyRecord]:
        return list(
            self.db.scalars(
                select(CompanyRecord)
                .where(CompanyRecord.company == company)
                .order_by(CompanyRecord.id)
            )
        )

    def save(self, record: CompanyRecord) -> CompanyRecord:
        self.db.add(record)
        self.db.flush()
        return record

    def save_all(self, records: list[CompanyRecord]) -> list[CompanyRecord]:
        self.db.add_all(records)
        self.db.flush()
        return records

    def count(self) -> int:
        return self.db.scalar(select(func.count()).select_from(CompanyRecord))
