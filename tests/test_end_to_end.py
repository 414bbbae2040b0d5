#!/usr/bin/env python3
"""
End-to-end harvest runs against a stub Saramin source and in-memory store.
"""

import sys
from pathlib import Path

from sqlalchemy import select

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from processing.batch import FaultTolerancePolicy, JobRepository
from processing.harvest import RunCoordinator, build_harvest_job, describe
from processing.models import BatchStatus, CompanyRecord, CrawlCursorState
from tests.conftest import FakeSaraminSource

JOB_NAME = "saraminJob"

DETAILS = {
    "a": {"company": "Alpha", "address": "1 First Ave, Springfield"},
    "b": {"company": "Beta", "address": "2 Second Ave, Springfield"},
    "c": {"company": "Gamma", "address": "3 Third Ave, Springfield"},
    "d": {"company": "Delta", "address": "4 Fourth Ave, Springfield"},
}


def two_page_source() -> FakeSaraminSource:
    return FakeSaraminSource(pages={1: ["a", "b"], 2: ["c", "d"], 3: []}, details=DETAILS)


def coordinator_for(session_factory, source, policy=None) -> RunCoordinator:
    job = build_harvest_job(
        source,
        job_name=JOB_NAME,
        max_page=10,
        chunk_size=2,
        policy=policy or FaultTolerancePolicy(),
        incrementer=False,
    )
    return RunCoordinator(job, session_factory=session_factory)


def stored_companies(session_factory) -> list[str]:
    db = session_factory()
    try:
        return list(db.scalars(select(CompanyRecord.company).order_by(CompanyRecord.id)))
    finally:
        db.close()


def test_full_run_harvests_every_listed_company(session_factory):
    source = two_page_source()

    status = coordinator_for(session_factory, source).run_now()

    assert describe(status) == "Job status: COMPLETED"
    assert stored_companies(session_factory) == ["Alpha", "Beta", "Gamma", "Delta"]
    assert source.listing_calls == [1, 2, 3]

    db = session_factory()
    try:
        assert db.scalars(select(CrawlCursorState)).first() is None, "Completed run clears its cursor"
        execution = JobRepository(db).find_executions_by_job_name(JOB_NAME)[0]
        assert execution.read_count == 4
        assert execution.write_count == 4
        assert execution.commit_count == 3
    finally:
        db.close()


def test_unreachable_company_page_is_dropped(session_factory):
    source = FakeSaraminSource(pages={1: ["a", "missing", "b"]}, details=DETAILS)

    status = coordinator_for(session_factory, source).run_now()

    assert status == BatchStatus.COMPLETED
    assert stored_companies(session_factory) == ["Alpha", "Beta"]


def test_rerun_updates_instead_of_duplicating(session_factory):
    db = session_factory()
    db.add(CompanyRecord.of(company="Alpha", address="1 First Avenue, Springfield", industry="old"))
    db.commit()
    db.close()

    source = FakeSaraminSource(
        pages={1: ["a"]},
        details={"a": {**DETAILS["a"], "industry": "new"}},
    )
    status = coordinator_for(session_factory, source).run_now()

    assert status == BatchStatus.COMPLETED
    db = session_factory()
    try:
        records = list(db.scalars(select(CompanyRecord)))
        assert len(records) == 1
        assert records[0].industry == "new"
        assert records[0].source_code == "a"
    finally:
        db.close()


def test_recovery_resumes_from_saved_cursor(session_factory):
    """A failed run's recovery continues after the last committed chunk."""
    source = two_page_source()
    source.fail_listing(2)
    coordinator = coordinator_for(session_factory, source, FaultTolerancePolicy(skip_limit=0))

    assert coordinator.run_now() == BatchStatus.FAILED
    assert stored_companies(session_factory) == ["Alpha", "Beta"]

    db = session_factory()
    try:
        cursor = db.scalars(select(CrawlCursorState)).one()
        assert cursor.current_page == 2
        assert cursor.next_index == 2
    finally:
        db.close()

    coordinator.recover_or_run()

    assert stored_companies(session_factory) == ["Alpha", "Beta", "Gamma", "Delta"]
    # Page 1 is not fetched again, nor are its companies
    assert source.listing_calls == [1, 2, 2, 3]
    assert source.detail_calls == ["a", "b", "c", "d"]

    db = session_factory()
    try:
        executions = JobRepository(db).find_executions_by_job_name(JOB_NAME)
        assert [e.status for e in executions] == [BatchStatus.COMPLETED, BatchStatus.FAILED]
        assert executions[0].parameters["run_date"] == executions[1].parameters["run_date"]
    finally:
        db.close()
