"""Two-phase disclosure: request decryption, then commit the attested value.

``request_disclosure`` is the only suspending step. It reads grants, calls
the oracle and returns a :class:`DisclosureTicket` without touching ledger
state, so a timeout or cancellation leaves the target sealed and the whole
action safely retryable.

``commit_disclosure`` never awaits. It runs inside one transaction and is
the single writer for a target: the ``AlreadyVerified`` guard is what
serialises racing commits, the first one wins and every later one fails
without changing anything.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from .codec import decode_clear_values
from .errors import (AlreadyVerified, InvalidProof, MalformedClearValue,
                     NotDisclosable, ProofMismatch)
from .grants import AccessGrantManager
from .ledger import LoanLedger
from .models import UINT64_MAX, LoanRecord, TrustScore
from .providers.base import Arithmetic, AttestationVerifier, DecryptionOracle
from .scoring import ScoreAggregator
from .state import LedgerState

logger = logging.getLogger(__name__)


class DisclosureState(str, enum.Enum):
    SEALED = "sealed"
    REVEALED = "revealed"


@dataclass(frozen=True)
class LoanTarget:
    borrower: str
    index: int

    kind = "repayment"

    def __str__(self) -> str:
        return f"loan {self.borrower}#{self.index}"


@dataclass(frozen=True)
class ScoreTarget:
    user: str

    kind = "score"

    def __str__(self) -> str:
        return f"score {self.user}"


Target = Union[LoanTarget, ScoreTarget]


@dataclass(frozen=True)
class DisclosureTicket:
    """Oracle answer for one or more handles, not yet committed."""

    handles: List[str]
    abi_encoded: bytes
    proof: bytes
    clear_values: Dict[str, int] = field(default_factory=dict)


class DisclosureProtocol:
    def __init__(
        self,
        state: LedgerState,
        arithmetic: Arithmetic,
        oracle: DecryptionOracle,
        verifier: AttestationVerifier,
        grants: AccessGrantManager,
        ledger: LoanLedger,
        aggregator: ScoreAggregator,
    ) -> None:
        self.state = state
        self.arithmetic = arithmetic
        self.oracle = oracle
        self.verifier = verifier
        self.grants = grants
        self.ledger = ledger
        self.aggregator = aggregator

    # ------------------------------------------------------------------
    def entity(self, target: Target) -> Union[LoanRecord, TrustScore]:
        if isinstance(target, LoanTarget):
            return self.ledger.get_loan(target.borrower, target.index)
        return self.aggregator.require_score(target.user)

    @staticmethod
    def handle_of(entity: Union[LoanRecord, TrustScore]) -> str:
        if isinstance(entity, LoanRecord):
            return entity.encrypted_repayment
        return entity.encrypted_score

    def status(self, target: Target) -> DisclosureState:
        if self.entity(target).is_verified:
            return DisclosureState.REVEALED
        return DisclosureState.SEALED

    # ------------------------------------------------------------------
    async def request_disclosure(
        self, handle: str, principal: Optional[str] = None
    ) -> DisclosureTicket:
        """Ask the oracle to decrypt *handle*. Pure read plus external call."""
        if not self.grants.is_disclosable(handle, principal):
            raise NotDisclosable(handle, principal)
        transport = self.arithmetic.to_transport_form(handle)
        result = await self.oracle.request_decryption([transport])
        return DisclosureTicket(
            handles=[handle],
            abi_encoded=result["abi_encoded"],
            proof=result["proof"],
            clear_values=dict(result["clear_values"]),
        )

    def commit_disclosure(self, target: Target, abi_encoded: bytes, proof: bytes) -> int:
        """Verify the attestation for *target* and store the revealed value."""
        with self.state.atomic():
            entity = self.entity(target)
            if entity.is_verified:
                raise AlreadyVerified(target)
            handle = self.handle_of(entity)
            transport = [self.arithmetic.to_transport_form(handle)]
            try:
                valid = self.verifier.verify(transport, abi_encoded, proof)
            except ValueError as exc:
                raise InvalidProof(str(exc)) from exc
            if not valid:
                raise ProofMismatch(f"attestation does not cover {target}")
            (value,) = decode_clear_values(abi_encoded, 1)
            if value > UINT64_MAX:
                raise MalformedClearValue(f"clear value exceeds euint64: {value}")

            if isinstance(target, LoanTarget):
                self.ledger.mark_verified(target.borrower, target.index, value)
            else:
                self.aggregator.mark_verified(target.user, value)
        logger.info("disclosed %s", target, extra={"handle": handle})
        return value

    async def disclose(self, target: Target, principal: Optional[str] = None) -> int:
        """Request and commit in one go (the user-facing "verify" action)."""
        entity = self.entity(target)
        if entity.is_verified:
            raise AlreadyVerified(target)
        ticket = await self.request_disclosure(self.handle_of(entity), principal)
        return self.commit_disclosure(target, ticket.abi_encoded, ticket.proof)
