# ==============================================================================
# metrics.py  –  Prometheus counters for ingestion and evaluation
#
# Labels carry the instance / job names so several overlay processes can be
# scraped by the same Prometheus server.
# ==============================================================================

from __future__ import annotations

import os

from prometheus_client import Counter, Histogram, start_http_server

from knightwatch.utils.logging_utils import setup_logger

LOGGER = setup_logger("knightwatch.metrics")

INSTANCE = os.getenv("INSTANCE_NAME", "overlay:8000")
JOB = os.getenv("JOB_NAME", "knightwatch")

GAMES_UPSERTED = Counter(
    "knightwatch_games_upserted_total",
    "PGN game records stored from the broadcast stream",
    ["instance", "job"],
)

STREAM_CONNECTS = Counter(
    "knightwatch_stream_connects_total",
    "Broadcast stream connection attempts",
    ["instance", "job", "outcome"],
)

POLLING_FALLBACKS = Counter(
    "knightwatch_polling_fallbacks_total",
    "Times ingestion switched to JSON snapshot polling",
    ["instance", "job"],
)

POLL_TICKS = Counter(
    "knightwatch_poll_ticks_total",
    "Snapshot polls by outcome",
    ["instance", "job", "outcome"],
)

EVALUATIONS = Counter(
    "knightwatch_evaluations_total",
    "Evaluation lookups by outcome",
    ["instance", "job", "outcome"],
)

EVALUATION_LATENCY = Histogram(
    "knightwatch_evaluation_duration_seconds",
    "Duration of evaluation lookups",
    ["instance", "job"],
)


def count_upserts(n: int) -> None:
    if n:
        GAMES_UPSERTED.labels(instance=INSTANCE, job=JOB).inc(n)


def count_stream_connect(outcome: str) -> None:
    STREAM_CONNECTS.labels(instance=INSTANCE, job=JOB, outcome=outcome).inc()


def count_polling_fallback() -> None:
    POLLING_FALLBACKS.labels(instance=INSTANCE, job=JOB).inc()


def count_poll_tick(outcome: str) -> None:
    POLL_TICKS.labels(instance=INSTANCE, job=JOB, outcome=outcome).inc()


def count_evaluation(outcome: str) -> None:
    EVALUATIONS.labels(instance=INSTANCE, job=JOB, outcome=outcome).inc()


def evaluation_timer():
    """Context manager timing one evaluation lookup."""
    return EVALUATION_LATENCY.labels(instance=INSTANCE, job=JOB).time()


def start_metrics_server(port: int) -> bool:
    """Expose /metrics on `port`. Returns False if the server cannot start."""
    try:
        LOGGER.info("Starting metrics server on port %d…", port)
        start_http_server(port)
    except OSError as exc:
        LOGGER.error("Failed to start metrics server: %s", exc)
        return False
    LOGGER.info("Metrics server started successfully.")
    return True
