"""Unit tests for the ledger event exporter."""
from __future__ import annotations

import gzip
import json
from pathlib import Path

import pytest
from sqlmodel import Session, select

from trust_ledger.event_exporter import EventExporter, main
from trust_ledger.models import LedgerEventRow


@pytest.fixture()
def exporter(db_engine, tmp_path) -> EventExporter:
    return EventExporter(lambda: Session(db_engine), batch_size=2, out_dir=tmp_path)


def test_exports_in_sequence_batches(exporter, make_loan, db_engine):
    for i in range(3):
        make_loan(f"user{i}", i, 100)

    first = exporter.export_once()
    assert first["selected"] == first["written"] == 2
    with gzip.open(first["file"], "rt") as gf:
        lines = gf.read().strip().split("\n")
    header = json.loads(lines[0])
    assert header["_type"] == "ledger_event_export"
    assert (header["first_seq"], header["last_seq"]) == (1, 2)
    body = [json.loads(line) for line in lines[1:]]
    assert [e["seq"] for e in body] == [1, 2]
    assert body[0]["kind"] == "loan_created"
    assert body[0]["payload"]["borrower"] == "user0"

    second = exporter.export_once()
    assert second["written"] == 1
    assert exporter.export_once()["selected"] == 0

    with Session(db_engine) as s:
        rows = s.exec(select(LedgerEventRow)).all()
    assert all(r.exported_at is not None for r in rows)
    assert {r.export_id for r in rows} == {first["export_id"], second["export_id"]}


def test_dry_run_writes_nothing(exporter, make_loan, tmp_path):
    make_loan("alice", 1, 10)
    stats = exporter.export_once(dry_run=True)
    assert stats["selected"] == 1 and stats["written"] == 0
    assert list(tmp_path.iterdir()) == []
    assert exporter.run_until_empty() == 1


def test_cli_exports_file_db(tmp_path):
    out_dir = tmp_path / "out"
    db_url = f"sqlite:///{tmp_path / 'ledger.db'}"
    assert main(["--db-url", db_url, "--out-dir", str(out_dir)]) == 0
    assert list(Path(out_dir).glob("*.ndjson.gz")) == []


def test_file_is_synced_before_rename(exporter, make_loan, monkeypatch, tmp_path):
    make_loan("alice", 1, 10)
    synced = []

    def _fsync(fd):
        synced.append(sorted(p.name for p in tmp_path.iterdir()))

    monkeypatch.setattr("trust_ledger.event_exporter.os.fsync", _fsync)
    stats = exporter.export_once()

    assert len(synced) == 1
    # only the temp file exists at sync time
    assert [name.endswith(".tmp") for name in synced[0]] == [True]
    assert Path(stats["file"]).exists()
