"""Prometheus metrics definitions for TusStore.

All custom metrics use the ``tusstore_`` prefix for namespace isolation.
Metrics are opt-in: until ``init_metrics()`` runs, every module-level
reference stays ``None`` and the record helpers are no-ops.

Crash-only design: counters reset to zero on restart.  Prometheus handles
gaps via ``rate()``.
"""

from __future__ import annotations

from prometheus_client import Counter

# Flag indicating whether metrics have been initialised via init_metrics().
_initialized: bool = False

# ---------------------------------------------------------------------------
# Store operation counter  (labels: operation, status)
# ---------------------------------------------------------------------------
operations_total: Counter | None = None

# ---------------------------------------------------------------------------
# Upload lifecycle counters
# ---------------------------------------------------------------------------
uploads_created_total: Counter | None = None
uploads_completed_total: Counter | None = None

# ---------------------------------------------------------------------------
# Byte counters
# ---------------------------------------------------------------------------
bytes_written_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics.

    Safe to call more than once; collectors are registered in the global
    registry only on the first call.
    """
    global _initialized
    global operations_total, uploads_created_total, uploads_completed_total
    global bytes_written_total

    if _initialized:
        return

    operations_total = Counter(
        "tusstore_operations_total",
        "Total store operations by type and outcome",
        ["operation", "status"],
    )

    uploads_created_total = Counter(
        "tusstore_uploads_created_total",
        "Total number of uploads created",
    )

    uploads_completed_total = Counter(
        "tusstore_uploads_completed_total",
        "Total number of uploads that reached their declared length",
    )

    bytes_written_total = Counter(
        "tusstore_bytes_written_total",
        "Total bytes durably appended to uploads",
    )

    _initialized = True


def record_operation(operation: str, status: str) -> None:
    """Count one store operation outcome, if metrics are enabled."""
    if operations_total is not None:
        operations_total.labels(operation=operation, status=status).inc()


def record_bytes_written(count: int) -> None:
    if bytes_written_total is not None and count > 0:
        bytes_written_total.inc(count)


def record_upload_created() -> None:
    if uploads_created_total is not None:
        uploads_created_total.inc()


def record_upload_completed() -> None:
    if uploads_completed_total is not None:
        uploads_completed_total.inc()
