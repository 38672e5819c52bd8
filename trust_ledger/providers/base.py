"""Collaborator interfaces for encrypted arithmetic and disclosure.

The ledger never performs cryptography itself. It talks to:

* an :class:`Arithmetic` engine that creates and combines ciphertext handles,
* a :class:`DecryptionOracle` that, given handles, returns their cleartext
  plus an attestation proof (asynchronous, may take arbitrarily long),
* an :class:`AttestationVerifier` that checks such a proof locally and
  synchronously inside the commit phase.
"""

from __future__ import annotations

from typing import Dict, Protocol, Sequence, TypedDict

__all__ = ["Arithmetic", "DecryptionOracle", "AttestationVerifier", "DecryptionResult"]


class DecryptionResult(TypedDict):
    """Payload returned by :meth:`DecryptionOracle.request_decryption`."""

    clear_values: Dict[str, int]  # handle -> cleartext
    abi_encoded: bytes  # one 32-byte word per handle
    proof: bytes


class Arithmetic(Protocol):
    """Homomorphic arithmetic engine working on ``0x`` hex handles."""

    def encrypt(self, cleartext: int) -> str:
        ...

    def add(self, lhs: str, rhs: str) -> str:
        ...

    def mul(self, lhs: str, rhs: str) -> str:
        ...

    def div(self, lhs: str, rhs: str) -> str:
        ...

    def from_external_input(self, ciphertext: bytes, proof: bytes) -> str:
        ...

    def to_transport_form(self, handle: str) -> bytes:
        ...


class DecryptionOracle(Protocol):
    async def request_decryption(self, handles: Sequence[bytes]) -> DecryptionResult:
        ...


class AttestationVerifier(Protocol):
    def verify(self, handles: Sequence[bytes], clear_blob: bytes, proof: bytes) -> bool:
        """Return whether *proof* attests *clear_blob* for exactly *handles*.

        Raises ``ValueError`` when the proof is structurally invalid.
        """
        ...
