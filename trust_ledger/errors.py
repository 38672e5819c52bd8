"""Error taxonomy for the trust ledger.

Every failure carries a stable machine ``code`` (used verbatim as the HTTP
``detail``), the HTTP status the API layer maps it to, and whether a caller
may retry the same request after fixing a precondition or fetching a fresh
proof.
"""
from __future__ import annotations

from typing import Optional

__all__ = [
    "LedgerError",
    "InvalidCiphertext",
    "InvalidLoanTerms",
    "IndexOutOfRange",
    "NoLoanRecords",
    "UnverifiedRepayments",
    "ZeroLoanAmount",
    "ScoreNotFound",
    "NotDisclosable",
    "UnknownHandle",
    "InvalidProof",
    "ProofMismatch",
    "MalformedClearValue",
    "AlreadyVerified",
    "OracleError",
]


class LedgerError(Exception):
    code = "ledger_error"
    status_code = 400
    retryable = False


# -- malformed input -------------------------------------------------------


class InvalidCiphertext(LedgerError):
    """External ciphertext input did not check out against its proof."""

    code = "invalid_ciphertext"


class InvalidLoanTerms(LedgerError):
    code = "invalid_loan_terms"
    status_code = 422


# -- precondition violations -----------------------------------------------


class IndexOutOfRange(LedgerError):
    code = "index_out_of_range"
    status_code = 404
    retryable = True

    def __init__(self, borrower: str, index: int, length: int) -> None:
        super().__init__(
            f"loan index {index} out of range for {borrower} (has {length})"
        )
        self.borrower = borrower
        self.index = index
        self.length = length


class NoLoanRecords(LedgerError):
    code = "no_loan_records"
    status_code = 409
    retryable = True

    def __init__(self, user: str) -> None:
        super().__init__(f"{user} has no loan records")
        self.user = user


class UnverifiedRepayments(LedgerError):
    code = "unverified_repayments"
    status_code = 409
    retryable = True

    def __init__(self, user: str, index: int) -> None:
        super().__init__(f"repayment {index} of {user} is not verified")
        self.user = user
        self.index = index


class ZeroLoanAmount(LedgerError):
    """A repayment ratio over a zero loan amount is undefined."""

    code = "zero_loan_amount"
    status_code = 409

    def __init__(self, user: str, index: int) -> None:
        super().__init__(f"loan {index} of {user} has a zero amount")
        self.user = user
        self.index = index


class ScoreNotFound(LedgerError):
    code = "score_not_found"
    status_code = 404
    retryable = True

    def __init__(self, user: str) -> None:
        super().__init__(f"no trust score computed for {user}")
        self.user = user


# -- access grants ---------------------------------------------------------


class NotDisclosable(LedgerError):
    code = "not_disclosable"
    status_code = 403

    def __init__(self, handle: str, principal: Optional[str] = None) -> None:
        who = f" for {principal}" if principal else ""
        super().__init__(f"ciphertext {handle} is not disclosable{who}")
        self.handle = handle
        self.principal = principal


class UnknownHandle(LedgerError):
    code = "unknown_handle"
    status_code = 404

    def __init__(self, handle: object) -> None:
        super().__init__(f"unknown ciphertext handle: {handle!r}")
        self.handle = handle


# -- attestation failures (never mutate state, retry with a fresh proof) ----


class InvalidProof(LedgerError):
    code = "invalid_proof"
    status_code = 422
    retryable = True


class ProofMismatch(LedgerError):
    code = "proof_mismatch"
    status_code = 422
    retryable = True


class MalformedClearValue(LedgerError):
    code = "malformed_clear_value"
    status_code = 422
    retryable = True


class OracleError(LedgerError):
    """The decryption oracle failed or timed out; the entity stays sealed."""

    code = "oracle_unavailable"
    status_code = 502
    retryable = True


# -- idempotency -----------------------------------------------------------


class AlreadyVerified(LedgerError):
    """Target already revealed. Callers treat this as a successful no-op."""

    code = "already_verified"
    status_code = 409

    def __init__(self, target: object) -> None:
        super().__init__(f"{target} is already verified")
        self.target = target
