#!/usr/bin/env python3
"""
Tests for the company merge writer (exact name + fuzzy address dedup).
"""

import sys
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.exc import OperationalError

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from processing.batch import ChunkOrientedStep, ItemProcessor, ItemReader
from processing.harvest import CompanyMergeWriter, CompanyRepository
from processing.models import BatchStatus, CompanyRecord


def seed(db, *records):
    db.add_all(records)
    db.commit()


def all_records(db) -> list[CompanyRecord]:
    return list(db.scalars(select(CompanyRecord).order_by(CompanyRecord.id)))


def test_similar_address_updates_existing_row(db):
    seed(db, CompanyRecord.of(company="Acme", address="12 Main St, Springfield", industry="Retail"))
    writer = CompanyMergeWriter(CompanyRepository(db))

    stats = writer.write([
        CompanyRecord.of(company="Acme", address="12 Main Street, Springfield", industry="Software"),
    ])
    db.commit()

    assert stats.updated == 1
    assert stats.inserted == 0
    records = all_records(db)
    assert len(records) == 1, "Matched company must not be duplicated"
    assert records[0].industry == "Software"
    assert records[0].address == "12 Main Street, Springfield"


def test_dissimilar_address_inserts_new_row(db):
    seed(db, CompanyRecord.of(company="Acme", address="12 Main St, Springfield"))
    writer = CompanyMergeWriter(CompanyRepository(db))

    stats = writer.write([
        CompanyRecord.of(company="Acme", address="900 Industrial Pkwy, Shelbyville"),
    ])
    db.commit()

    assert stats.inserted == 1
    assert len(all_records(db)) == 2


def test_name_must_match_exactly(db):
    seed(db, CompanyRecord.of(company="Acme", address="12 Main St, Springfield"))
    writer = CompanyMergeWriter(CompanyRepository(db))

    stats = writer.write([
        CompanyRecord.of(company="Acme Corp", address="12 Main St, Springfield"),
    ])
    db.commit()

    assert stats.inserted == 1
    assert len(all_records(db)) == 2


def test_threshold_must_be_exceeded(db):
    seed(db, CompanyRecord.of(company="Acme", address="A"))
    writer = CompanyMergeWriter(CompanyRepository(db), threshold=0.7, scorer=lambda a, b: 0.7)

    stats = writer.write([CompanyRecord.of(company="Acme", address="B")])

    assert stats.inserted == 1
    assert stats.updated == 0


def test_best_scoring_candidate_wins(db):
    seed(
        db,
        CompanyRecord.of(company="Acme", address="north"),
        CompanyRecord.of(company="Acme", address="south"),
    )
    scores = {"north": 0.75, "south": 0.9}
    writer = CompanyMergeWriter(CompanyRepository(db), scorer=lambda existing, new: scores[existing])

    writer.write([CompanyRecord.of(company="Acme", address="south-ish", homepage="https://acme.example.com")])
    db.commit()

    north, south = all_records(db)
    assert north.homepage == "-"
    assert south.homepage == "https://acme.example.com"


def test_tie_goes_to_earliest_candidate(db):
    seed(
        db,
        CompanyRecord.of(company="Acme", address="first"),
        CompanyRecord.of(company="Acme", address="second"),
    )
    writer = CompanyMergeWriter(CompanyRepository(db), scorer=lambda a, b: 0.8)

    match, score = writer.best_match(CompanyRecord.of(company="Acme"), all_records(db))

    assert match.address == "first"
    assert score == 0.8


def test_duplicates_within_one_chunk_are_folded(db):
    writer = CompanyMergeWriter(CompanyRepository(db))

    stats = writer.write([
        CompanyRecord.of(company="Acme", address="12 Main St, Springfield", sales="1억"),
        CompanyRecord.of(company="Acme", address="12 Main Street, Springfield", sales="2억"),
    ])
    db.commit()

    assert stats.inserted == 1
    assert stats.folded == 1
    records = all_records(db)
    assert len(records) == 1
    assert records[0].sales == "2억"


def test_store_error_costs_only_that_record(db):
    class FlakyRepository(CompanyRepository):
        def find_by_company_name(self, company):
            if company == "Broken":
                raise OperationalError("SELECT", {}, Exception("disk I/O error"))
            return super().find_by_company_name(company)

    writer = CompanyMergeWriter(FlakyRepository(db))

    stats = writer.write([
        CompanyRecord.of(company="Alpha", address="1 First Ave"),
        CompanyRecord.of(company="Broken", address="2 Second Ave"),
        CompanyRecord.of(company="Gamma", address="3 Third Ave"),
    ])
    db.commit()

    assert stats.failed == 1
    assert stats.inserted == 2
    assert [r.company for r in all_records(db)] == ["Alpha", "Gamma"]


def test_failed_batch_insert_keeps_updates(db):
    seed(db, CompanyRecord.of(company="Acme", address="12 Main St, Springfield"))
    writer = CompanyMergeWriter(CompanyRepository(db))

    stats = writer.write([
        CompanyRecord.of(company="Acme", address="12 Main Street, Springfield", industry="Software"),
        CompanyRecord.of(company="Beta", address="1 First Ave"),
        # company is NOT NULL, so the batched insert fails
        CompanyRecord.of(company=None, address="2 Second Ave"),
    ])
    db.commit()

    assert stats.updated == 1
    assert stats.inserted == 0
    assert stats.failed == 2
    records = all_records(db)
    assert len(records) == 1
    assert records[0].industry == "Software"


def test_stats_accumulate_across_chunks(db):
    writer = CompanyMergeWriter(CompanyRepository(db))

    for _ in range(2):
        writer.write([CompanyRecord.of(company="Alpha", address="1 First Ave")])
        db.commit()
        writer.after_commit()

    assert writer.stats.inserted == 1
    assert writer.stats.updated == 1
    assert len(all_records(db)) == 1


def test_update_leaves_contact_and_funding_fields_alone(db):
    existing = CompanyRecord.of(company="Acme", address="12 Main St, Springfield")
    existing.email = "ir@acme.example.com"
    existing.phone_number = "02-555-0100"
    existing.total_funding = "50억"
    seed(db, existing)
    writer = CompanyMergeWriter(CompanyRepository(db))

    stats = writer.write([
        CompanyRecord.of(
            company="Acme",
            key_executive="Jane Kim",
            industry="Software",
            address="12 Main Street, Springfield",
            homepage="https://acme.example.com",
            sales="120억",
            logo_url="https://img.example.com/acme.png",
        ),
    ])
    db.commit()

    assert stats.updated == 1
    records = all_records(db)
    assert len(records) == 1
    record = records[0]

    # Never extracted, so never overwritten
    assert record.email == "ir@acme.example.com"
    assert record.phone_number == "02-555-0100"
    assert record.total_funding == "50억"

    assert record.company == "Acme"
    assert record.key_executive == "Jane Kim"
    assert record.industry == "Software"
    assert record.address == "12 Main Street, Springfield"
    assert record.homepage == "https://acme.example.com"
    assert record.sales == "120억"
    assert record.logo_url == "https://img.example.com/acme.png"


class RecordReader(ItemReader):
    def __init__(self, records):
        self.records = list(records)

    def read(self):
        return self.records.pop(0) if self.records else None


class PassThrough(ItemProcessor):
    def process(self, item):
        return item


def test_retried_commit_counts_chunk_once(db, monkeypatch):
    """A chunk whose commit is retried shows up once in the run totals."""
    real_commit = db.commit
    commits = []

    def commit_locked_once():
        commits.append(1)
        if len(commits) == 1:
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        real_commit()

    monkeypatch.setattr(db, "commit", commit_locked_once)
    writer = CompanyMergeWriter(CompanyRepository(db))
    records = [CompanyRecord.of(company=name, address=f"{i} Main St") for i, name in enumerate("ABC", 1)]

    execution = ChunkOrientedStep(
        "mergeStep", RecordReader(records), PassThrough(), writer, db, chunk_size=10
    ).execute()

    assert execution.status == BatchStatus.COMPLETED
    assert execution.rollback_count == 1
    assert [r.company for r in all_records(db)] == ["A", "B", "C"]
    assert writer.stats.inserted == 3, "Retried chunk must not be counted twice"
    assert writer.stats.failed == 0
