"""
Company Harvest - Database Models

SQLAlchemy ORM models for harvested companies and batch bookkeeping.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# Stored instead of NULL when a field is missing on the page
PLACEHOLDER = "-"


class Base(DeclarativeBase):
    pass


# Enums
class BatchStatus(PyEnum):
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    STOPPED = "STOPPED"


class CompanyRecord(Base):
    """
    One harvested company.

    Rows are deduplicated by exact company name plus fuzzy address match,
    not by the source company code.
    """

    __tablename__ = "company_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    key_executive: Mapped[str] = mapped_column(Text, default=PLACEHOLDER)
    industry: Mapped[str] = mapped_column(String(100), default=PLACEHOLDER)
    address: Mapped[str] = mapped_column(Text, default=PLACEHOLDER)
    homepage: Mapped[str] = mapped_column(Text, default=PLACEHOLDER)

    # Contact / funding fields are never extracted by the harvest job
    email: Mapped[str] = mapped_column(String(100), default=PLACEHOLDER)
    phone_number: Mapped[str] = mapped_column(String(50), default=PLACEHOLDER)
    sales: Mapped[str] = mapped_column(Text, default=PLACEHOLDER)
    total_funding: Mapped[str] = mapped_column(String(100), default=PLACEHOLDER)
    logo_url: Mapped[str] = mapped_column(Text, default=PLACEHOLDER)

    source_code: Mapped[Optional[str]] = mapped_column(String(50), index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), onupdate=func.now(), nullable=False
    )

    # Fields a fresher extraction overwrites on merge
    MUTABLE_FIELDS = (
        "company",
        "key_executive",
        "industry",
        "address",
        "homepage",
        "sales",
        "logo_url",
    )

    @classmethod
    def of(
        cls,
        company: str = PLACEHOLDER,
        key_executive: str = PLACEHOLDER,
        industry: str = PLACEHOLDER,
        address: str = PLACEHOLDER,
        homepage: str = PLACEHOLDER,
        sales: str = PLACEHOLDER,
        logo_url: str = PLACEHOLDER,
        source_code: Optional[str] = None,
    ) -> "CompanyRecord":
        """Build an unsaved record with every text field populated."""
        return cls(
            company=company,
            key_executive=key_executive,
            industry=industry,
            address=address,
            homepage=homepage,
            email=PLACEHOLDER,
            phone_number=PLACEHOLDER,
            sales=sales,
            total_funding=PLACEHOLDER,
            logo_url=logo_url,
            source_code=source_code,
        )

    def update_from(self, other: "CompanyRecord") -> None:
        """Overwrite the mutable fields with a fresher extraction."""
        for name in self.MUTABLE_FIELDS:
            setattr(self, name, getattr(other, name))
        if other.source_code:
            self.source_code = other.source_code

    def __repr__(self) -> str:
        return f"<CompanyRecord(id={self.id}, company={self.company}, address={self.address})>"


class CrawlCursorState(Base):
    """
    Persisted position of the listing reader.

    Keeps the page's code list too, so a restart resumes mid-page.
    """

    __tablename__ = "crawl_cursors"

    cursor_key: Mapped[str] = mapped_column(String(200), primary_key=True)
    current_page: Mapped[int] = mapped_column(Integer, nullable=False)
    max_page: Mapped[int] = mapped_column(Integer, nullable=False)
    next_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    codes: Mapped[list] = mapped_column(JSON, default=list)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<CrawlCursorState(key={self.cursor_key}, page={self.current_page}, index={self.next_index})>"


class JobInstance(Base):
    """A job name plus one distinct set of identifying parameters."""

    __tablename__ = "job_instances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    job_key: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), nullable=False
    )

    executions: Mapped[list["JobExecution"]] = relationship(
        back_populates="instance",
        cascade="all, delete-orphan",
        order_by="JobExecution.id",
    )

    __table_args__ = (
        Index("ix_job_instances_name_key", "job_name", "job_key", unique=True),
    )

    def __repr__(self) -> str:
        return f"<JobInstance(id={self.id}, job={self.job_name}, key={self.job_key[:8]})>"


class JobExecution(Base):
    """One attempt at running a job instance."""

    __tablename__ = "job_executions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    instance_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("job_instances.id"), nullable=False, index=True
    )
    job_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    status: Mapped[BatchStatus] = mapped_column(
        Enum(BatchStatus), nullable=False, default=BatchStatus.STARTING, index=True
    )
    parameters: Mapped[dict] = mapped_column(JSON, default=dict)

    start_time: Mapped[Optional[datetime]] = mapped_column(DateTime, index=True)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime)
    exit_message: Mapped[Optional[str]] = mapped_column(Text)

    # Step counters
    read_count: Mapped[int] = mapped_column(Integer, default=0)
    write_count: Mapped[int] = mapped_column(Integer, default=0)
    filter_count: Mapped[int] = mapped_column(Integer, default=0)
    skip_count: Mapped[int] = mapped_column(Integer, default=0)
    commit_count: Mapped[int] = mapped_column(Integer, default=0)
    rollback_count: Mapped[int] = mapped_column(Integer, default=0)

    # Local time, like start_time and the launcher clock
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, nullable=False
    )

    instance: Mapped["JobInstance"] = relationship(back_populates="executions")

    __table_args__ = (
        Index("ix_job_executions_name_status", "job_name", "status"),
    )

    def __repr__(self) -> str:
        return f"<JobExecution(id={self.id}, job={self.job_name}, status={self.status.value})>"
