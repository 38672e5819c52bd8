"""In-process stand-ins for the FHE engine and the decryption oracle.

``MockFheEngine`` keeps plaintexts in a dict keyed by random handles and does
plain integer arithmetic modulo 2**64 (``euint64`` semantics). Division
truncates, which for the non-negative values the ledger handles equals
floor division.

``MockDecryptionOracle`` simulates the asynchronous decryption round-trip.
Failures can be injected via the ``MOCK_ORACLE_FAIL`` env variable (set it
to ``"decrypt"``); latency via ``MOCK_ORACLE_LATENCY`` seconds.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import os
from typing import Dict, Sequence, Tuple

from common.secrets import secrets

from ..codec import bytes_to_handle, encode_clear_values, handle_to_bytes
from ..errors import InvalidCiphertext, OracleError, UnknownHandle
from .attestation import sign_attestation, signing_key
from .base import Arithmetic, DecryptionOracle, DecryptionResult

UINT64_MOD = 1 << 64

_VALUE_SIZE = 8
_NONCE_SIZE = 16


def input_key() -> bytes:
    return secrets.get_bytes("FHE_INPUT_KEY", "insecure-dev-input-key")


class MockFheEngine(Arithmetic):
    """Plain-integer arithmetic behind opaque handles."""

    def __init__(self, key: bytes | None = None) -> None:
        self._key = key if key is not None else input_key()
        self._values: Dict[str, int] = {}

    # -- handle bookkeeping -------------------------------------------------
    def _store(self, value: int) -> str:
        handle = bytes_to_handle(os.urandom(32))
        self._values[handle] = value % UINT64_MOD
        return handle

    def plaintext(self, handle: str) -> int:
        """Test/oracle hook: the value behind *handle*."""
        try:
            return self._values[handle]
        except KeyError:
            raise UnknownHandle(handle) from None

    # -- client side --------------------------------------------------------
    def encrypt_input(self, value: int) -> Tuple[bytes, bytes]:
        """Produce ``(ciphertext, proof)`` as a wallet would before submitting."""
        if value < 0 or value >= UINT64_MOD:
            raise ValueError(f"value out of euint64 range: {value}")
        ciphertext = value.to_bytes(_VALUE_SIZE, "big") + os.urandom(_NONCE_SIZE)
        proof = hmac.new(self._key, ciphertext, hashlib.sha256).digest()
        return ciphertext, proof

    # -- Arithmetic ---------------------------------------------------------
    def encrypt(self, cleartext: int) -> str:
        if cleartext < 0:
            raise ValueError(f"cannot encrypt negative value {cleartext}")
        return self._store(cleartext)

    def add(self, lhs: str, rhs: str) -> str:
        return self._store(self.plaintext(lhs) + self.plaintext(rhs))

    def mul(self, lhs: str, rhs: str) -> str:
        return self._store(self.plaintext(lhs) * self.plaintext(rhs))

    def div(self, lhs: str, rhs: str) -> str:
        divisor = self.plaintext(rhs)
        if divisor == 0:
            raise ZeroDivisionError("encrypted division by zero")
        return self._store(self.plaintext(lhs) // divisor)

    def from_external_input(self, ciphertext: bytes, proof: bytes) -> str:
        if (
            not isinstance(ciphertext, (bytes, bytearray))
            or len(ciphertext) != _VALUE_SIZE + _NONCE_SIZE
        ):
            raise InvalidCiphertext("ciphertext input has the wrong shape")
        expected = hmac.new(self._key, bytes(ciphertext), hashlib.sha256).digest()
        if not isinstance(proof, (bytes, bytearray)) or not hmac.compare_digest(
            expected, bytes(proof)
        ):
            raise InvalidCiphertext("input proof does not match ciphertext")
        return self._store(int.from_bytes(ciphertext[:_VALUE_SIZE], "big"))

    def to_transport_form(self, handle: str) -> bytes:
        self.plaintext(handle)
        return handle_to_bytes(handle)


class MockDecryptionOracle(DecryptionOracle):
    """Decrypts through the mock engine and signs the result."""

    def __init__(
        self,
        engine: MockFheEngine,
        key: bytes | None = None,
        *,
        latency: float | None = None,
    ) -> None:
        self.engine = engine
        self._key = key if key is not None else signing_key()
        self.latency = (
            latency
            if latency is not None
            else float(os.getenv("MOCK_ORACLE_LATENCY", "0.01"))
        )

    async def request_decryption(self, handles: Sequence[bytes]) -> DecryptionResult:
        await asyncio.sleep(self.latency)
        if os.getenv("MOCK_ORACLE_FAIL", "") == "decrypt":
            raise OracleError("mock oracle forced failure for decrypt")

        ordered = [bytes_to_handle(bytes(raw)) for raw in handles]
        values = [self.engine.plaintext(handle) for handle in ordered]
        clear_values = dict(zip(ordered, values))
        blob = encode_clear_values(values)
        return {
            "clear_values": clear_values,
            "abi_encoded": blob,
            "proof": sign_attestation(self._key, [bytes(h) for h in handles], blob),
        }
