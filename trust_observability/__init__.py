"""Prometheus metrics for the trust ledger services."""

from .metrics import (disclosure_latency_seconds, disclosures_total,
                      loans_created_total, score_computations_total)

__all__ = [
    "loans_created_total",
    "disclosures_total",
    "disclosure_latency_seconds",
    "score_computations_total",
]
