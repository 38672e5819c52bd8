from __future__ import annotations

"""Audit journal for actions taken through the ledger API.

Unlike the domain event log (which only records successful state
transitions), the journal also keeps rejected and failed attempts so an
operator can see who tried to verify what and why it was refused.
"""

import os
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column, DateTime, String, create_engine
from sqlalchemy.engine import Engine
from sqlmodel import Field, Session, SQLModel

__all__ = [
    "AuditJournal",
    "get_engine",
    "set_engine",
    "log_event",
]


AUDIT_DB_URL = os.getenv("AUDIT_DB_URL", "sqlite:///./audit_journal.db")

_engine: Engine | None = None


class AuditJournal(SQLModel, table=True):
    """Immutable audit row."""

    __tablename__ = "audit_journal"

    id: Optional[int] = Field(default=None, primary_key=True)
    ts: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column("ts", DateTime, nullable=False, index=True),
    )

    # Emitting service, e.g. "trust_ledger"
    service: str = Field(sa_column=Column(String, nullable=False, index=True))

    # Authenticated principal, or the borrower the action concerns
    actor: Optional[str] = None

    # Action verb e.g. "LOAN_CREATED", "REPAYMENT_VERIFY_FAILED"
    action: str = Field(sa_column=Column(String, nullable=False))

    details: Dict[str, Any] = Field(
        default_factory=dict, sa_column=Column(JSON, nullable=False, default={})
    )


def get_engine() -> Engine:
    """Return the audit engine, creating it (and its table) on first use."""
    global _engine
    if _engine is None:
        _engine = create_engine(
            AUDIT_DB_URL,
            echo=False,
            connect_args={"check_same_thread": False}
            if AUDIT_DB_URL.startswith("sqlite")
            else {},
        )
        AuditJournal.__table__.create(_engine, checkfirst=True)
    return _engine


def set_engine(engine: Engine) -> None:
    """Point the journal at another database (tests, scripts)."""
    global _engine
    AuditJournal.__table__.create(engine, checkfirst=True)
    _engine = engine


def log_event(
    *,
    service: str,
    action: str,
    actor: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """Insert a new audit record in its own transaction.

    The journal uses a separate engine so that a rolled-back ledger
    transaction never takes its failure record down with it.
    """

    entry = AuditJournal(
        service=service,
        action=action,
        actor=actor,
        details=details or {},
    )
    with Session(get_engine()) as audit_sess:
        audit_sess.add(entry)
        audit_sess.commit()
