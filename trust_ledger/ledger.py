"""Per-borrower append-only loan records with encrypted repayments."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List

from sqlalchemy import func
from sqlmodel import select

from common.datetime import to_naive_utc

from .errors import AlreadyVerified, IndexOutOfRange, InvalidLoanTerms
from .events import EventLog, LoanCreated, RepaymentVerified
from .grants import AccessGrantManager
from .models import UINT64_MAX, LoanRecord
from .providers.base import Arithmetic
from .state import LedgerState

logger = logging.getLogger(__name__)


class LoanLedger:
    """Owns every :class:`LoanRecord`.

    Records are keyed by borrower and insertion index. They are never
    deleted and change exactly once, when their repayment is disclosed.
    """

    def __init__(
        self,
        state: LedgerState,
        arithmetic: Arithmetic,
        grants: AccessGrantManager,
        events: EventLog,
    ) -> None:
        self.state = state
        self.arithmetic = arithmetic
        self.grants = grants
        self.events = events

    def _length(self, borrower: str) -> int:
        return self.state.session.exec(
            select(func.count(LoanRecord.id)).where(LoanRecord.borrower == borrower)
        ).one()

    def create_loan(
        self,
        borrower: str,
        encrypted_input: bytes,
        proof: bytes,
        loan_amount: int,
        due_date: datetime,
    ) -> LoanRecord:
        """Append a loan for *borrower* and make its repayment disclosable.

        The ciphertext is validated before anything is written; an
        ``InvalidCiphertext`` leaves the ledger untouched.
        """
        if not borrower:
            raise InvalidLoanTerms("borrower must not be empty")
        if isinstance(loan_amount, bool) or not isinstance(loan_amount, int):
            raise InvalidLoanTerms("loan amount must be an integer")
        if not 0 <= loan_amount <= UINT64_MAX:
            raise InvalidLoanTerms(f"loan amount out of uint64 range: {loan_amount}")

        handle = self.arithmetic.from_external_input(encrypted_input, proof)

        with self.state.atomic():
            index = self._length(borrower)
            record = LoanRecord(
                borrower=borrower,
                position=index,
                encrypted_repayment=handle,
                loan_amount=loan_amount,
                due_date=to_naive_utc(due_date),
            )
            self.state.session.add(record)
            self.grants.grant_self_access(handle)
            self.grants.grant_public_disclosure(handle)
            self.events.emit(
                LoanCreated(
                    borrower=borrower,
                    index=index,
                    handle=handle,
                    loan_amount=loan_amount,
                    due_date=record.due_date,
                )
            )
        self.state.session.refresh(record)
        logger.info("loan %d created", index, extra={"borrower": borrower, "handle": handle})
        return record

    def get_loans(self, borrower: str) -> List[LoanRecord]:
        return list(
            self.state.session.exec(
                select(LoanRecord)
                .where(LoanRecord.borrower == borrower)
                .order_by(LoanRecord.position)
            ).all()
        )

    def get_loan(self, borrower: str, index: int) -> LoanRecord:
        record = None
        if index >= 0:
            record = self.state.session.exec(
                select(LoanRecord).where(
                    LoanRecord.borrower == borrower, LoanRecord.position == index
                )
            ).first()
        if record is None:
            raise IndexOutOfRange(borrower, index, self._length(borrower))
        return record

    def borrowers(self) -> List[str]:
        return list(
            self.state.session.exec(
                select(LoanRecord.borrower).distinct().order_by(LoanRecord.borrower)
            ).all()
        )

    def mark_verified(self, borrower: str, index: int, clear_value: int) -> LoanRecord:
        """Commit a disclosed repayment. Only the disclosure protocol calls this."""
        with self.state.atomic():
            record = self.get_loan(borrower, index)
            if record.is_verified:
                raise AlreadyVerified(f"loan {borrower}#{index}")
            record.clear_repayment = clear_value
            record.is_repaid = True
            record.is_verified = True
            record.verified_at = datetime.utcnow()
            self.state.session.add(record)
            self.events.emit(
                RepaymentVerified(borrower=borrower, index=index, clear_repayment=clear_value)
            )
        logger.info("repayment %d verified", index, extra={"borrower": borrower})
        return record
