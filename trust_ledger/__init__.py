"""Encrypted repayment ledger with verifiable trust-score disclosure."""

from .disclosure import (DisclosureProtocol, DisclosureState, DisclosureTicket,
                         LoanTarget, ScoreTarget)
from .grants import AccessGrantManager
from .ledger import LoanLedger
from .scoring import ScoreAggregator
from .service import TrustLedgerService
from .state import LedgerState

__all__ = [
    "AccessGrantManager",
    "DisclosureProtocol",
    "DisclosureState",
    "DisclosureTicket",
    "LedgerState",
    "LoanLedger",
    "LoanTarget",
    "ScoreAggregator",
    "ScoreTarget",
    "TrustLedgerService",
]
