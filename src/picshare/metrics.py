"""Prometheus metrics definitions for PicShare.

All custom metrics use the ``picshare_`` prefix. HTTP-level metrics
(request count, duration, sizes) come from
``prometheus-fastapi-instrumentator``; the counters here track the media
protocol itself: operations, ingested bytes, compensating actions and
orphaned blobs.

Counters reset to zero on restart. When metrics are disabled in config the
module-level references stay ``None`` and the ``record_*`` helpers are
no-ops.
"""

from __future__ import annotations

from prometheus_client import Counter

_initialized: bool = False

media_operations_total: Counter | None = None
bytes_ingested_total: Counter | None = None
compensations_total: Counter | None = None
orphan_blobs_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics (idempotent)."""
    global _initialized
    global media_operations_total, bytes_ingested_total
    global compensations_total, orphan_blobs_total

    if _initialized:
        return

    media_operations_total = Counter(
        "picshare_media_operations_total",
        "Media operations by type and outcome",
        ["operation", "status"],
    )

    bytes_ingested_total = Counter(
        "picshare_bytes_ingested_total",
        "Total image bytes written to the blob store",
    )

    compensations_total = Counter(
        "picshare_compensations_total",
        "Compensating actions run after a failed ingestion step",
        ["step", "outcome"],
    )

    orphan_blobs_total = Counter(
        "picshare_orphan_blobs_total",
        "Blobs left behind after their metadata row was deleted",
    )

    _initialized = True


def record_operation(operation: str, status: str) -> None:
    if media_operations_total is not None:
        media_operations_total.labels(operation=operation, status=status).inc()


def record_bytes_ingested(size: int) -> None:
    if bytes_ingested_total is not None and size > 0:
        bytes_ingested_total.inc(size)


def record_compensation(step: str, outcome: str) -> None:
    if compensations_total is not None:
        compensations_total.labels(step=step, outcome=outcome).inc()


def record_orphan_blob() -> None:
    if orphan_blobs_total is not None:
        orphan_blobs_total.inc()
