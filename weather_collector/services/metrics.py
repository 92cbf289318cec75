"""Prometheus metrics for the collection job."""

from __future__ import annotations

import logging

from prometheus_client import CollectorRegistry, Counter, Histogram, push_to_gateway

from weather_collector.core.config import Settings

logger = logging.getLogger(__name__)

REGISTRY = CollectorRegistry()

COLLECTIONS_TOTAL = Counter(
    "weather_collections_total",
    "Collection attempts by outcome (success, failed, skipped).",
    ["outcome"],
    registry=REGISTRY,
)
PROVIDER_REQUEST_SECONDS = Histogram(
    "weather_provider_request_seconds",
    "Latency of each weather provider request.",
    registry=REGISTRY,
)
PROVIDER_RETRIES_TOTAL = Counter(
    "weather_provider_retries_total",
    "Provider requests retried after a retryable failure.",
    registry=REGISTRY,
)
RATE_LIMIT_HITS = Counter(
    "weather_provider_rate_limit_hits_total",
    "Count of HTTP 429 responses returned by the provider.",
    registry=REGISTRY,
)


def push_metrics(settings: Settings) -> bool:
    """Push the job registry to a Pushgateway; a failed push is only a warning."""
    if not settings.metrics_enabled or not settings.metrics_pushgateway_url:
        return False
    try:
        push_to_gateway(
            settings.metrics_pushgateway_url,
            job=settings.metrics_job_name,
            registry=REGISTRY,
        )
    except OSError as exc:
        logger.warning("Failed to push metrics to %s: %s", settings.metrics_pushgateway_url, exc)
        return False
    return True


__all__ = [
    "REGISTRY",
    "COLLECTIONS_TOTAL",
    "PROVIDER_REQUEST_SECONDS",
    "PROVIDER_RETRIES_TOTAL",
    "RATE_LIMIT_HITS",
    "push_metrics",
]
