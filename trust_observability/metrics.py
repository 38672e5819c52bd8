# trust_observability/metrics.py
"""
Prometheus metrics for the trust ledger.

This module does NOT start an HTTP server. The FastAPI app mounts the ASGI
exporter at ``/metrics``; batch tools (the event exporter) may call
:func:`maybe_start_http_server` when ``METRICS_HTTP_SERVER=1``.
"""

import os
import threading
from typing import Any, Dict, Tuple, Type

from prometheus_client import Counter, Gauge, Histogram, start_http_server

_METRICS_PORT = int(os.getenv("METRICS_PORT", "8001"))
_server_started = False
_server_lock = threading.Lock()


def maybe_start_http_server() -> None:
    """Start a sidecar metrics server once, if METRICS_HTTP_SERVER=1."""
    global _server_started
    if _server_started or os.getenv("METRICS_HTTP_SERVER") != "1":
        return
    with _server_lock:
        if not _server_started:
            start_http_server(_METRICS_PORT)
            _server_started = True


# ----------------------------
# Registration helper (avoid duplicate collectors on re-import)
# ----------------------------
_METRICS: Dict[Tuple[Type[Any], str], Any] = {}


def get_metric(cls: Type[Any], name: str, *args, **kwargs):
    key = (cls, name)
    if key in _METRICS:
        return _METRICS[key]
    metric = cls(name, *args, **kwargs)
    _METRICS[key] = metric
    return metric


# ----------------------------
# Ledger metrics
# ----------------------------

loans_created_total = get_metric(
    Counter,
    "trust_loans_created_total",
    "Loan records appended to the ledger",
)

disclosures_total = get_metric(
    Counter,
    "trust_disclosures_total",
    "Disclosure attempts by target kind and outcome",
    ["target", "outcome"],
)

disclosure_latency_seconds = get_metric(
    Histogram,
    "trust_disclosure_latency_seconds",
    "Round-trip latency of the decryption oracle in seconds",
    ["target"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
)

score_computations_total = get_metric(
    Counter,
    "trust_score_computations_total",
    "Trust score computations by outcome",
    ["outcome"],
)

verified_scores = get_metric(
    Gauge,
    "trust_verified_scores",
    "Number of users whose current trust score is disclosed",
)

events_exported_total = get_metric(
    Counter,
    "trust_events_exported_total",
    "Ledger events written to export files",
)

events_export_backlog = get_metric(
    Gauge,
    "trust_events_export_backlog",
    "Ledger events not yet written to an export file",
)
