"""Lender-facing analytics derived from disclosed values.

Everything here works on cleartext that has already passed the disclosure
protocol; nothing reads a ciphertext. The helpers are pure so they can be
tested without a database.
"""
from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Dict, Iterable, Optional, TypedDict

from .models import LoanRecord, TrustScore

__all__ = ["TrustAnalysis", "LedgerStats", "analyze_trust", "ledger_stats", "POLICY"]

# ---------------------------------------------------------------------------
# Policy loading
# ---------------------------------------------------------------------------

_DEFAULT_POLICY = {
    "high_risk_threshold": 30,
    "neutral_score": 50,
    "default_loan_amount": 1000,
    "amount_risk_cap": 30,
    "amount_risk_reference": 10_000,
}

_POLICY_PATH = Path(__file__).with_name("policy.json")


def _load_policy() -> Dict:
    try:
        with _POLICY_PATH.open() as fp:
            return {**_DEFAULT_POLICY, **json.load(fp)}
    except FileNotFoundError:
        return dict(_DEFAULT_POLICY)


POLICY = _load_policy()


class TrustAnalysis(TypedDict):
    risk_level: int
    repayment_probability: float
    creditworthiness: int
    loan_approval: int
    confidence: int


class LedgerStats(TypedDict):
    total_loans: int
    verified_loans: int
    average_loan_amount: float
    high_risk_users: int


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def analyze_trust(
    score: Optional[int], loan_amount: Optional[int] = None, policy: Dict = POLICY
) -> TrustAnalysis:
    """Turn a disclosed trust score into the lender dashboard figures.

    An undisclosed score (``None``) is analysed at the neutral score.
    """
    trust = policy["neutral_score"] if score is None else score
    amount = loan_amount or policy["default_loan_amount"]

    base_risk = max(5, min(95, 100 - trust))
    amount_risk = min(
        policy["amount_risk_cap"],
        amount / policy["amount_risk_reference"] * policy["amount_risk_cap"],
    )
    return {
        "risk_level": _round_half_up(base_risk + amount_risk),
        "repayment_probability": min(98.0, max(60.0, trust * 0.8 + 20)),
        "creditworthiness": min(100, _round_half_up(trust * 1.2)),
        "loan_approval": min(100, _round_half_up((trust - 30) * 2.5)),
        "confidence": min(100, _round_half_up(trust * 0.6 + 40)),
    }


def ledger_stats(
    loans: Iterable[LoanRecord], scores: Iterable[TrustScore], policy: Dict = POLICY
) -> LedgerStats:
    """Dashboard counters over the whole ledger.

    Users whose score is not disclosed yet count at the neutral score.
    """
    loans = list(loans)
    verified = sum(1 for loan in loans if loan.is_verified)
    average = sum(loan.loan_amount for loan in loans) / len(loans) if loans else 0.0
    high_risk = 0
    for score in scores:
        value = score.clear_score if score.is_verified else policy["neutral_score"]
        if value < policy["high_risk_threshold"]:
            high_risk += 1
    return {
        "total_loans": len(loans),
        "verified_loans": verified,
        "average_loan_amount": average,
        "high_risk_users": high_risk,
    }
