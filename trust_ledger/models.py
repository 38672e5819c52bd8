from __future__ import annotations

"""SQLModel tables backing the trust ledger.

Column names are explicit lowercase; ciphertext handles are stored as their
``0x``-prefixed hex form.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import (JSON, Boolean, Column, DateTime, Index, Integer,
                        String, TypeDecorator, UniqueConstraint)
from sqlmodel import Field, SQLModel

UINT64_MAX = (1 << 64) - 1


class UInt64(TypeDecorator):
    """Unsigned 64-bit integer stored as zero-padded decimal text.

    ``BigInteger`` is signed, so values from 2**63 up (valid ``euint64``
    cleartexts) would not fit. Padding keeps text order equal to numeric order.
    """

    impl = String(20)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not 0 <= value <= UINT64_MAX:
            raise ValueError(f"value out of uint64 range: {value}")
        return f"{value:020d}"

    def process_result_value(self, value, dialect):
        return None if value is None else int(value)


class LoanRecord(SQLModel, table=True):
    """One loan of a borrower: public terms plus an encrypted repayment.

    ``clear_repayment`` is meaningless (``None``) until ``is_verified`` flips,
    after which both are fixed for good.
    """

    __tablename__ = "loan_record"

    id: Optional[int] = Field(default=None, primary_key=True)
    borrower: str = Field(sa_column=Column("borrower", String, nullable=False))
    # insertion index within the borrower's sequence, 0-based
    position: int = Field(sa_column=Column("position", Integer, nullable=False))
    encrypted_repayment: str = Field(
        sa_column=Column("encrypted_repayment", String, nullable=False)
    )
    loan_amount: int = Field(sa_column=Column("loan_amount", UInt64, nullable=False))
    due_date: datetime = Field(sa_column=Column("due_date", DateTime, nullable=False))

    is_repaid: bool = Field(
        default=False, sa_column=Column("is_repaid", Boolean, nullable=False, default=False)
    )
    is_verified: bool = Field(
        default=False,
        sa_column=Column("is_verified", Boolean, nullable=False, default=False),
    )
    clear_repayment: Optional[int] = Field(
        default=None, sa_column=Column("clear_repayment", UInt64)
    )

    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column("created_at", DateTime, nullable=False),
    )
    verified_at: Optional[datetime] = Field(
        default=None, sa_column=Column("verified_at", DateTime)
    )

    __table_args__ = (
        UniqueConstraint("borrower", "position", name="loan_record_seq_uniq"),
        Index("ix_loan_record_borrower", "borrower"),
    )


class TrustScore(SQLModel, table=True):
    """Current trust score of a user (one row per user, replaced on recompute)."""

    __tablename__ = "trust_score"

    user: str = Field(sa_column=Column("user_id", String, primary_key=True))
    encrypted_score: str = Field(
        sa_column=Column("encrypted_score", String, nullable=False)
    )
    loan_count: int = Field(sa_column=Column("loan_count", Integer, nullable=False))
    is_verified: bool = Field(
        default=False,
        sa_column=Column("is_verified", Boolean, nullable=False, default=False),
    )
    clear_score: Optional[int] = Field(
        default=None, sa_column=Column("clear_score", UInt64)
    )
    computed_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column("computed_at", DateTime, nullable=False),
    )
    verified_at: Optional[datetime] = Field(
        default=None, sa_column=Column("verified_at", DateTime)
    )


class CiphertextGrant(SQLModel, table=True):
    """Grant header for a ciphertext handle; carries the public flag."""

    __tablename__ = "ciphertext_grant"

    handle: str = Field(sa_column=Column("handle", String, primary_key=True))
    public_disclosure: bool = Field(
        default=False,
        sa_column=Column("public_disclosure", Boolean, nullable=False, default=False),
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column("created_at", DateTime, nullable=False),
    )


class GrantPrincipal(SQLModel, table=True):
    """A principal allowed to use / disclose a ciphertext."""

    __tablename__ = "grant_principal"

    id: Optional[int] = Field(default=None, primary_key=True)
    handle: str = Field(sa_column=Column("handle", String, nullable=False))
    principal: str = Field(sa_column=Column("principal", String, nullable=False))

    __table_args__ = (
        UniqueConstraint("handle", "principal", name="grant_principal_uniq"),
    )


class LedgerEventRow(SQLModel, table=True):
    """Append-only event log; ``id`` is the global sequence number."""

    __tablename__ = "ledger_event"

    id: Optional[int] = Field(default=None, primary_key=True)
    kind: str = Field(sa_column=Column("kind", String, nullable=False, index=True))
    payload: Dict[str, Any] = Field(
        default_factory=dict, sa_column=Column("payload", JSON, nullable=False)
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column=Column("created_at", DateTime, nullable=False),
    )
    # bookkeeping for the exporter
    exported_at: Optional[datetime] = Field(
        default=None, sa_column=Column("exported_at", DateTime, index=True)
    )
    export_id: Optional[str] = Field(default=None, sa_column=Column("export_id", String))
