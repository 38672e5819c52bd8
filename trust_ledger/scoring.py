"""Encrypted trust score aggregation.

score = (sum_i repayment_i * 100 // loan_amount_i) // n

All arithmetic runs in the encrypted domain through the engine; each
division truncates (floor for these non-negative operands). Ratios are not
clamped, so an over-repayment pushes the average above 100.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from .errors import (AlreadyVerified, NoLoanRecords, ScoreNotFound,
                     UnverifiedRepayments, ZeroLoanAmount)
from .events import EventLog, ScoreComputed, ScoreVerified
from .grants import AccessGrantManager
from .ledger import LoanLedger
from .models import TrustScore
from .providers.base import Arithmetic
from .state import LedgerState

logger = logging.getLogger(__name__)

RATIO_SCALE = 100


class ScoreAggregator:
    """Owns the single current :class:`TrustScore` of each user."""

    def __init__(
        self,
        state: LedgerState,
        arithmetic: Arithmetic,
        ledger: LoanLedger,
        grants: AccessGrantManager,
        events: EventLog,
    ) -> None:
        self.state = state
        self.arithmetic = arithmetic
        self.ledger = ledger
        self.grants = grants
        self.events = events

    def compute_score(self, user: str) -> TrustScore:
        loans = self.ledger.get_loans(user)
        if not loans:
            raise NoLoanRecords(user)
        for loan in loans:
            if not loan.is_verified:
                raise UnverifiedRepayments(user, loan.position)
        for loan in loans:
            if loan.loan_amount == 0:
                raise ZeroLoanAmount(user, loan.position)

        arith = self.arithmetic
        scale = arith.encrypt(RATIO_SCALE)
        total = arith.encrypt(0)
        for loan in loans:
            scaled = arith.mul(loan.encrypted_repayment, scale)
            ratio = arith.div(scaled, arith.encrypt(loan.loan_amount))
            total = arith.add(total, ratio)
        handle = arith.div(total, arith.encrypt(len(loans)))

        with self.state.atomic():
            score = self.state.session.get(TrustScore, user)
            if score is None:
                score = TrustScore(user=user, encrypted_score=handle, loan_count=len(loans))
            else:
                # the previous handle is dropped without being disclosed
                score.encrypted_score = handle
                score.loan_count = len(loans)
                score.computed_at = datetime.utcnow()
            score.is_verified = False
            score.clear_score = None
            score.verified_at = None
            self.state.session.add(score)
            self.grants.grant_self_access(handle)
            self.grants.grant_public_disclosure(handle)
            self.events.emit(ScoreComputed(user=user, handle=handle, loan_count=len(loans)))
        self.state.session.refresh(score)
        logger.info(
            "trust score computed over %d loans", len(loans),
            extra={"user": user, "handle": handle},
        )
        return score

    def get_score(self, user: str) -> Optional[TrustScore]:
        return self.state.session.get(TrustScore, user)

    def require_score(self, user: str) -> TrustScore:
        score = self.get_score(user)
        if score is None:
            raise ScoreNotFound(user)
        return score

    def mark_verified(self, user: str, clear_value: int) -> TrustScore:
        with self.state.atomic():
            score = self.require_score(user)
            if score.is_verified:
                raise AlreadyVerified(f"score {user}")
            score.clear_score = clear_value
            score.is_verified = True
            score.verified_at = datetime.utcnow()
            self.state.session.add(score)
            self.events.emit(ScoreVerified(user=user, clear_score=clear_value))
        logger.info("trust score verified", extra={"user": user})
        return score
