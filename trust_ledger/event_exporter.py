# trust_ledger/event_exporter.py
"""Batch exporter writing the ledger event log as gzip NDJSON for indexers.

Each file starts with a header line, followed by one line per event in
sequence order. Rows are stamped with ``exported_at``/``export_id`` in the
same transaction that follows the file write, so a crash between the two
re-exports the batch rather than losing it; the file is fsynced before its
rename.
"""
from __future__ import annotations

import argparse
import gzip
import json
import logging
import os
import socket
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional
from uuid import uuid4

from sqlalchemy import create_engine, func
from sqlmodel import Session, SQLModel, select

from common.logging import configure_logging
from trust_observability import metrics as met

from .models import LedgerEventRow

logger = logging.getLogger(__name__)

HOSTNAME = socket.gethostname()


def _get_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


EXPORT_DIR = Path(os.getenv("EVENT_EXPORT_DIR", "./event_exports"))
BATCH_SIZE = _get_int("EVENT_EXPORT_BATCH", 1000)


def _now_utc_iso_z() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _iso_z(value: datetime) -> str:
    dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _atomic_write_gz_ndjson(lines: List[str], export_id: str, directory: Path) -> Path:
    ts_safe = datetime.utcnow().strftime("%Y%m%dT%H%M%SZ")
    fname = f"events-{ts_safe}-{HOSTNAME}-{os.getpid()}-{export_id}.ndjson.gz"
    directory.mkdir(parents=True, exist_ok=True)

    tmp_fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
    path_tmp = Path(tmp_path)
    try:
        with os.fdopen(tmp_fd, "wb") as raw:
            with gzip.GzipFile(fileobj=raw, mode="w", mtime=0) as gz:
                for line in lines:
                    gz.write(line.encode("utf-8"))
                    gz.write(b"\n")
            # durable before the rename; rows are stamped right after
            raw.flush()
            os.fsync(raw.fileno())
        final_path = directory / fname
        path_tmp.rename(final_path)
        return final_path
    except Exception:
        path_tmp.unlink(missing_ok=True)
        raise


class EventExporter:
    """Export unexported :class:`LedgerEventRow` rows in sequence order."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        batch_size: int = BATCH_SIZE,
        out_dir: Path = EXPORT_DIR,
    ):
        self._session_factory = session_factory
        self.batch_size = batch_size
        self.out_dir = Path(out_dir)

    def export_once(self, *, dry_run: bool = False) -> dict:
        with self._session_factory() as sess:
            rows = sess.exec(
                select(LedgerEventRow)
                .where(LedgerEventRow.exported_at.is_(None))
                .order_by(LedgerEventRow.id)
                .limit(self.batch_size)
            ).all()
            if not rows:
                self._update_backlog_gauge(sess)
                return {"selected": 0, "written": 0, "file": None, "export_id": ""}

            export_id = uuid4().hex
            lines = [
                json.dumps(
                    {
                        "_type": "ledger_event_export",
                        "_v": 1,
                        "export_id": export_id,
                        "created_at": _now_utc_iso_z(),
                        "first_seq": rows[0].id,
                        "last_seq": rows[-1].id,
                    }
                )
            ]
            for r in rows:
                lines.append(
                    json.dumps(
                        {
                            "seq": r.id,
                            "kind": r.kind,
                            "ts": _iso_z(r.created_at),
                            "payload": r.payload,
                        },
                        separators=(",", ":"),
                        ensure_ascii=False,
                    )
                )

            if dry_run:
                return {"selected": len(rows), "written": 0, "file": None, "export_id": export_id}

            path = _atomic_write_gz_ndjson(lines, export_id, self.out_dir)
            now = datetime.utcnow()
            for r in rows:
                r.exported_at = now
                r.export_id = export_id
                sess.add(r)
            sess.commit()
            met.events_exported_total.inc(len(rows))
            self._update_backlog_gauge(sess)
            logger.info("exported %d events to %s", len(rows), path.name)
            return {"selected": len(rows), "written": len(rows), "file": str(path), "export_id": export_id}

    def run_until_empty(self, *, max_batches: Optional[int] = None) -> int:
        """Export batches until nothing is left; returns rows written."""
        total = batches = 0
        while max_batches is None or batches < max_batches:
            stats = self.export_once()
            if stats["selected"] == 0:
                break
            total += stats["written"]
            batches += 1
        return total

    def _update_backlog_gauge(self, sess: Session) -> None:
        backlog = sess.exec(
            select(func.count(LedgerEventRow.id)).where(LedgerEventRow.exported_at.is_(None))
        ).one()
        met.events_export_backlog.set(backlog)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Export ledger events as gzip NDJSON")
    parser.add_argument("--db-url", default=os.getenv("LEDGER_DB_URL", "sqlite:///./trust_ledger.db"))
    parser.add_argument("--out-dir", default=str(EXPORT_DIR))
    parser.add_argument("--batch-size", type=int, default=BATCH_SIZE)
    parser.add_argument("--max-batches", type=int, default=None)
    args = parser.parse_args(argv)

    configure_logging(service_name="event_exporter")
    met.maybe_start_http_server()
    engine = create_engine(args.db_url, echo=False)
    SQLModel.metadata.create_all(engine)
    exporter = EventExporter(
        lambda: Session(engine), batch_size=args.batch_size, out_dir=Path(args.out_dir)
    )
    t0 = time.perf_counter()
    written = exporter.run_until_empty(max_batches=args.max_batches)
    logger.info("export finished: %d events in %.2fs", written, time.perf_counter() - t0)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
