"""HTTP client for a remote decryption relayer.

The relayer fronts the key-management network: it accepts ciphertext
handles and answers with ABI-encoded clear values plus the KMS attestation.
Verification of that attestation happens locally (see
:mod:`trust_ledger.providers.attestation`), never through this client.
"""

from __future__ import annotations

import logging
import os
from typing import Optional, Sequence

import httpx

from ..codec import bytes_to_handle, decode_clear_values
from ..errors import MalformedClearValue, OracleError
from .base import DecryptionOracle, DecryptionResult

logger = logging.getLogger(__name__)

RELAYER_URL = os.getenv("RELAYER_URL", "http://127.0.0.1:8070")


def _unhex(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


class RelayerDecryptionOracle(DecryptionOracle):
    """``DecryptionOracle`` backed by ``POST {base_url}/v1/public-decrypt``."""

    def __init__(
        self,
        base_url: str = RELAYER_URL,
        api_key: Optional[str] = None,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict:
        if self.api_key:
            return {"Authorization": f"Bearer {self.api_key}"}
        return {}

    async def request_decryption(self, handles: Sequence[bytes]) -> DecryptionResult:
        hex_handles = [bytes_to_handle(bytes(h)) for h in handles]
        url = f"{self.base_url}/v1/public-decrypt"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    url, json={"handles": hex_handles}, headers=self._headers()
                )
                resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "relayer rejected decryption request: %s", exc.response.status_code
            )
            raise OracleError(
                f"relayer returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("relayer unreachable: %s", exc)
            raise OracleError(f"relayer request failed: {exc}") from exc

        try:
            body = resp.json()
            blob = _unhex(body["abiEncodedClearValues"])
            proof = _unhex(body["decryptionProof"])
            values = decode_clear_values(blob, len(hex_handles))
        except (KeyError, TypeError, ValueError, MalformedClearValue) as exc:
            raise OracleError(f"malformed relayer response: {exc}") from exc

        return {
            "clear_values": dict(zip(hex_handles, values)),
            "abi_encoded": blob,
            "proof": proof,
        }
