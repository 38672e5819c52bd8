"""Wiring and user-facing actions for the trust ledger (API entry points)."""
from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import List, Optional

from sqlmodel import Session, select

from trust_observability.metrics import (disclosure_latency_seconds,
                                         disclosures_total,
                                         loans_created_total,
                                         score_computations_total,
                                         verified_scores)

from .analysis import LedgerStats, TrustAnalysis, analyze_trust, ledger_stats
from .disclosure import DisclosureProtocol, LoanTarget, ScoreTarget, Target
from .errors import AlreadyVerified, LedgerError
from .events import EventLog, LedgerEvent
from .grants import AccessGrantManager
from .ledger import LoanLedger
from .models import LoanRecord, TrustScore
from .providers.base import Arithmetic, AttestationVerifier, DecryptionOracle
from .scoring import ScoreAggregator
from .state import DEFAULT_PRINCIPAL, LedgerState

logger = logging.getLogger(__name__)


class TrustLedgerService:
    """Facade over the ledger components bound to one session."""

    def __init__(
        self,
        session: Session,
        arithmetic: Arithmetic,
        oracle: DecryptionOracle,
        verifier: AttestationVerifier,
        *,
        principal: str = DEFAULT_PRINCIPAL,
    ):
        self.state = LedgerState(session=session, principal=principal)
        self.events = EventLog(self.state)
        self.grants = AccessGrantManager(self.state)
        self.ledger = LoanLedger(self.state, arithmetic, self.grants, self.events)
        self.aggregator = ScoreAggregator(
            self.state, arithmetic, self.ledger, self.grants, self.events
        )
        self.protocol = DisclosureProtocol(
            self.state,
            arithmetic,
            oracle,
            verifier,
            self.grants,
            self.ledger,
            self.aggregator,
        )

    # ------------------------------------------------------------------
    # Loans
    # ------------------------------------------------------------------
    def create_loan(
        self,
        borrower: str,
        encrypted_input: bytes,
        proof: bytes,
        loan_amount: int,
        due_date: datetime,
    ) -> LoanRecord:
        record = self.ledger.create_loan(
            borrower, encrypted_input, proof, loan_amount, due_date
        )
        loans_created_total.inc()
        return record

    def loans(self, borrower: str) -> List[LoanRecord]:
        return self.ledger.get_loans(borrower)

    async def verify_repayment(
        self, borrower: str, index: int, principal: Optional[str] = None
    ) -> int:
        """Disclose a repayment; returns the verified cleartext."""
        target = LoanTarget(borrower, index)
        await self._disclose(target, principal)
        return self.ledger.get_loan(borrower, index).clear_repayment

    # ------------------------------------------------------------------
    # Scores
    # ------------------------------------------------------------------
    def compute_score(self, user: str) -> TrustScore:
        try:
            score = self.aggregator.compute_score(user)
        except LedgerError as exc:
            score_computations_total.labels(outcome=exc.code).inc()
            raise
        score_computations_total.labels(outcome="success").inc()
        self._refresh_verified_gauge()
        return score

    def score(self, user: str) -> Optional[TrustScore]:
        return self.aggregator.get_score(user)

    async def verify_score(self, user: str, principal: Optional[str] = None) -> int:
        await self._disclose(ScoreTarget(user), principal)
        self._refresh_verified_gauge()
        return self.aggregator.require_score(user).clear_score

    def analysis(self, user: str) -> TrustAnalysis:
        score = self.aggregator.require_score(user)
        loans = self.ledger.get_loans(user)
        latest_amount = loans[-1].loan_amount if loans else None
        return analyze_trust(
            score.clear_score if score.is_verified else None, latest_amount
        )

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------
    def events_after(self, after: int = 0, limit: int = 100) -> List[LedgerEvent]:
        return self.events.read(after=after, limit=limit)

    def stats(self) -> LedgerStats:
        session = self.state.session
        return ledger_stats(
            session.exec(select(LoanRecord)).all(),
            session.exec(select(TrustScore)).all(),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _disclose(self, target: Target, principal: Optional[str]) -> None:
        """Run both disclosure phases, treating ``AlreadyVerified`` as done."""
        t0 = time.perf_counter()
        try:
            await self.protocol.disclose(target, principal)
        except AlreadyVerified:
            disclosures_total.labels(target=target.kind, outcome="already_verified").inc()
            logger.info("%s already verified, nothing to do", target)
            return
        except LedgerError as exc:
            disclosures_total.labels(target=target.kind, outcome=exc.code).inc()
            logger.warning("disclosure of %s failed: %s", target, exc)
            raise
        finally:
            disclosure_latency_seconds.labels(target=target.kind).observe(
                time.perf_counter() - t0
            )
        disclosures_total.labels(target=target.kind, outcome="success").inc()

    def _refresh_verified_gauge(self) -> None:
        count = len(
            self.state.session.exec(
                select(TrustScore.user).where(TrustScore.is_verified == True)  # noqa: E712
            ).all()
        )
        verified_scores.set(count)
