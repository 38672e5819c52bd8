"""HMAC-SHA256 attestations binding clear values to ciphertext handles.

The proof is a MAC over the ordered transport forms of the handles followed
by the ABI-encoded clear values, so a proof issued for one handle (or one
value) does not verify for any other.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Sequence

from common.secrets import secrets

PROOF_SIZE = hashlib.sha256().digest_size


def signing_key() -> bytes:
    return secrets.get_bytes("ORACLE_SIGNING_KEY", "insecure-dev-oracle-key")


def _message(handles: Sequence[bytes], clear_blob: bytes) -> bytes:
    return len(handles).to_bytes(4, "big") + b"".join(handles) + clear_blob


def sign_attestation(key: bytes, handles: Sequence[bytes], clear_blob: bytes) -> bytes:
    return hmac.new(key, _message(handles, clear_blob), hashlib.sha256).digest()


class HmacAttestationVerifier:
    """Local verifier sharing the oracle's signing key."""

    def __init__(self, key: bytes | None = None) -> None:
        self._key = key if key is not None else signing_key()

    def verify(self, handles: Sequence[bytes], clear_blob: bytes, proof: bytes) -> bool:
        if not isinstance(proof, (bytes, bytearray)) or len(proof) != PROOF_SIZE:
            raise ValueError("attestation proof must be a 32-byte MAC")
        if not handles:
            raise ValueError("attestation covers no handles")
        expected = sign_attestation(self._key, handles, bytes(clear_blob))
        return hmac.compare_digest(expected, bytes(proof))
