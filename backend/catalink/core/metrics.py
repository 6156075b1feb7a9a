"""Prometheus metrics configuration."""

from __future__ import annotations

import structlog
from fastapi import FastAPI
from prometheus_client import Counter, Gauge, Histogram
from prometheus_fastapi_instrumentator import Instrumentator

logger = structlog.get_logger("catalink.metrics")

app_info = Gauge(
    "app_info",
    "Application information",
    ["version"],
)

# Database connection pool metrics
db_connections_active = Gauge(
    "db_connections_active",
    "Number of active database connections",
)
db_connections_idle = Gauge(
    "db_connections_idle",
    "Number of idle database connections in pool",
)
db_pool_size = Gauge(
    "db_pool_size",
    "Configured database connection pool size",
)

# Candidate generation
candidate_requests_total = Counter(
    "candidate_requests_total",
    "Total number of candidate generation requests",
    ["outcome"],  # outcome: ok, partial, cancelled
)
candidate_source_fetch_total = Counter(
    "candidate_source_fetch_total",
    "Source fetches performed during candidate generation",
    ["source", "outcome"],  # outcome: ok, failed, timeout
)
candidate_generation_duration_seconds = Histogram(
    "candidate_generation_duration_seconds",
    "Wall time of a full candidate generation call",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)
candidates_returned = Histogram(
    "candidates_returned",
    "Number of candidates returned per request",
    buckets=(0, 1, 5, 10, 25, 50, 100),
)

# Match lifecycle
match_decisions_total = Counter(
    "match_decisions_total",
    "Match decisions recorded",
    ["status", "action"],  # action: created, updated, superseded
)
match_conflicts_total = Counter(
    "match_conflicts_total",
    "Active-match uniqueness conflicts during confirm",
    ["outcome"],  # outcome: recovered, fatal
)


def setup_metrics(app: FastAPI, app_version: str) -> None:
    """Setup Prometheus metrics using prometheus-fastapi-instrumentator.

    Args:
        app: FastAPI application instance
        app_version: Application version
    """
    if getattr(app.state, "_metrics_initialized", False):
        logger.debug("Metrics already initialized for this app instance, skipping")
        return

    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=[
            "/metrics",
            "/docs",
            "/openapi.json",
            "/redoc",
        ],
    )
    instrumentator.instrument(app).expose(app, endpoint="/metrics")

    app.state._metrics_initialized = True
    app_info.labels(version=app_version).set(1)

    logger.info("Metrics initialized", version=app_version)
