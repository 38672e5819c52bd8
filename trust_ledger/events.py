"""Domain events emitted by the ledger.

Events form a closed tagged union keyed on ``kind``. They are persisted in
the same transaction as the state change they describe, so observers never
see an event for a rolled-back mutation.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from sqlmodel import select

from .models import LedgerEventRow
from .state import LedgerState

__all__ = [
    "LoanCreated",
    "RepaymentVerified",
    "ScoreComputed",
    "ScoreVerified",
    "LedgerEvent",
    "EventLog",
]

logger = logging.getLogger(__name__)


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    # assigned by the log when read back
    seq: Optional[int] = None


class LoanCreated(_Event):
    kind: Literal["loan_created"] = "loan_created"
    borrower: str
    index: int
    handle: str
    loan_amount: int
    due_date: datetime


class RepaymentVerified(_Event):
    kind: Literal["repayment_verified"] = "repayment_verified"
    borrower: str
    index: int
    clear_repayment: int


class ScoreComputed(_Event):
    kind: Literal["score_computed"] = "score_computed"
    user: str
    handle: str
    loan_count: int


class ScoreVerified(_Event):
    kind: Literal["score_verified"] = "score_verified"
    user: str
    clear_score: int


LedgerEvent = Annotated[
    Union[LoanCreated, RepaymentVerified, ScoreComputed, ScoreVerified],
    Field(discriminator="kind"),
]

_adapter: TypeAdapter = TypeAdapter(LedgerEvent)


class EventLog:
    """Append-only event log stored next to the ledger tables."""

    def __init__(self, state: LedgerState) -> None:
        self.state = state

    def emit(self, event: _Event) -> None:
        """Stage *event*; it is committed with the surrounding transaction."""
        payload = event.model_dump(mode="json", exclude={"seq"})
        self.state.session.add(LedgerEventRow(kind=payload["kind"], payload=payload))
        logger.info("ledger event %s", payload["kind"], extra={"target": payload})

    def read(self, *, after: int = 0, limit: int = 100) -> List[LedgerEvent]:
        """Return events with a sequence number greater than *after*."""
        rows = self.state.session.exec(
            select(LedgerEventRow)
            .where(LedgerEventRow.id > after)
            .order_by(LedgerEventRow.id)
            .limit(limit)
        ).all()
        return [parse_event(row) for row in rows]


def parse_event(row: LedgerEventRow) -> LedgerEvent:
    return _adapter.validate_python({**row.payload, "seq": row.id})
