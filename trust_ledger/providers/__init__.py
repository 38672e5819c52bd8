"""Adapters for the homomorphic engine and the decryption oracle."""

from .base import (Arithmetic, AttestationVerifier, DecryptionOracle,
                   DecryptionResult)

__all__ = ["Arithmetic", "AttestationVerifier", "DecryptionOracle", "DecryptionResult"]
