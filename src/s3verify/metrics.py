"""Prometheus metrics definitions for s3verify.

All metrics use the ``s3verify_`` prefix and live in a dedicated registry so
that a run can be dumped to a node-exporter text file without picking up
process collectors.  Metrics are counters only: a harness run is short-lived
and the text file is rewritten at the end of each run.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, generate_latest, write_to_textfile

registry = CollectorRegistry()

# Flag indicating whether metrics have been initialised via init_metrics().
_initialized: bool = False

# ---------------------------------------------------------------------------
# Request counter  (labels: method, status)
# ---------------------------------------------------------------------------
requests_total: Counter | None = None

# ---------------------------------------------------------------------------
# Check outcome counter  (labels: outcome)
# ---------------------------------------------------------------------------
checks_total: Counter | None = None

# ---------------------------------------------------------------------------
# Byte counter
# ---------------------------------------------------------------------------
bytes_sent_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all s3verify metrics.

    Safe to call more than once; later calls are no-ops.
    """
    global _initialized
    global requests_total, checks_total, bytes_sent_total

    if _initialized:
        return

    requests_total = Counter(
        "s3verify_requests_total",
        "Total HTTP requests sent to the endpoint by method and status",
        ["method", "status"],
        registry=registry,
    )

    checks_total = Counter(
        "s3verify_checks_total",
        "Total conformance checks by outcome",
        ["outcome"],
        registry=registry,
    )

    bytes_sent_total = Counter(
        "s3verify_bytes_sent_total",
        "Total bytes sent in request bodies",
        registry=registry,
    )

    _initialized = True


def record_request(method: str, status: int | str, body_size: int) -> None:
    """Count one request/response exchange. No-op before init_metrics()."""
    if requests_total is not None:
        requests_total.labels(method=method, status=str(status)).inc()
    if bytes_sent_total is not None and body_size:
        bytes_sent_total.inc(body_size)


def record_check(passed: bool) -> None:
    """Count one check outcome. No-op before init_metrics()."""
    if checks_total is not None:
        checks_total.labels(outcome="pass" if passed else "fail").inc()


def render() -> bytes:
    """Render the registry in Prometheus text exposition format."""
    return generate_latest(registry)


def write_metrics(path: str) -> None:
    """Write the registry atomically to a node-exporter text file."""
    write_to_textfile(path, registry)
