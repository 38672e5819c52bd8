"""JSON-file backed secrets shared by the ledger services.

The signing keys of the decryption oracle, the FHE input-proof key and the
API bearer tokens all live in one JSON document pointed to by
``SECRETS_PATH``. Tests swap the whole document via :meth:`set_override`.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional


class SecretsManager:
    """Lazily load and cache secrets from a JSON file."""

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(
            path or os.getenv("SECRETS_PATH", "/var/run/secrets/trust_ledger.json")
        )
        self._cache: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._cache is None:
            try:
                with self._path.open("r", encoding="utf-8") as fh:
                    self._cache = json.load(fh)
            except FileNotFoundError:
                self._cache = {}
        return self._cache

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        return self._load().get(key, default)

    def get_bytes(self, key: str, default: str) -> bytes:
        """Return a key as raw bytes.

        Values prefixed with ``0x`` are hex-decoded, anything else is taken
        as UTF-8 text.
        """
        value = str(self.get(key, default))
        if value.startswith("0x"):
            return bytes.fromhex(value[2:])
        return value.encode("utf-8")

    def set_override(self, data: dict[str, Any]) -> None:
        """Replace the entire secret cache (test helper)."""

        self._cache = dict(data)


secrets = SecretsManager()


def get_secret(key: str, default: Optional[Any] = None) -> Any:
    return secrets.get(key, default)
