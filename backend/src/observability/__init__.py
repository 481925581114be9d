"""Observability module for DealSpotter.

Provides structured logging, request correlation, Prometheus metrics and
health checks.
"""

from .logging_config import configure_logging, get_logger
from .metrics import (
    basket_comparisons_total,
    basket_duration_seconds,
    cache_events_total,
    catalog_deals_written_total,
    match_confidence_histogram,
    match_results_total,
    match_stage_failures_total,
)
from .request_id import request_id_var, get_request_id, set_request_id, generate_request_id
from .health import HealthStatus, ComponentHealth
from .middleware import RequestIDMiddleware

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    # Metrics
    "basket_comparisons_total",
    "basket_duration_seconds",
    "cache_events_total",
    "catalog_deals_written_total",
    "match_confidence_histogram",
    "match_results_total",
    "match_stage_failures_total",
    # Request ID
    "request_id_var",
    "get_request_id",
    "set_request_id",
    "generate_request_id",
    # Health
    "HealthStatus",
    "ComponentHealth",
    # Middleware
    "RequestIDMiddleware",
]
