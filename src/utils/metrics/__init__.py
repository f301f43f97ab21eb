"""
Prometheus metrics for refdata-sync

Usage:
    from utils.metrics import initialize_metrics

    metrics = initialize_metrics(port=9091, pushgateway="pushgateway:9091")
    metrics["sync"].record_migration_run(status="completed", duration=45.2, errors=0)
    metrics["publisher"].push()
"""

import logging
from typing import Any, Callable, TypeVar

from prometheus_client import REGISTRY, CollectorRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_or_create_metric(
    metric_factory: Callable[[], T],
    metric_name: str,
    registry: CollectorRegistry = REGISTRY,
) -> T:
    """
    Return the collector registered under ``metric_name``, creating it if needed.

    Module-level metrics are defined at import time; re-importing a module
    (or creating a second SyncMetrics on the same registry) must reuse the
    collector instead of raising a duplicate timeseries error.

    Example:
        RECORDS_WRITTEN = get_or_create_metric(
            lambda: Counter("refsync_records_written_total", "...", ["table"]),
            "refsync_records_written_total",
        )
    """
    existing = registry._names_to_collectors.get(metric_name)
    if existing is not None:
        return existing
    return metric_factory()


from .publisher import ApplicationInfo, MetricsPublisher  # noqa: E402
from .sync import SyncMetrics  # noqa: E402


def initialize_metrics(
    port: int | None = None,
    pushgateway: str | None = None,
    registry: CollectorRegistry | None = None,
    version: str = "1.0.0",
) -> dict[str, Any]:
    """
    Create the run-level metrics and start serving them

    Args:
        port: Port for the /metrics endpoint (None: do not serve)
        pushgateway: Pushgateway address (None: do not push)
        registry: Custom Prometheus registry (default: global REGISTRY)
        version: Application version reported by the build info metric

    Returns:
        Dictionary with "publisher", "sync" and "app_info"
    """
    logger.debug(f"Initializing metrics (port={port}, pushgateway={pushgateway or 'none'})")

    publisher = MetricsPublisher(port=port, pushgateway=pushgateway, registry=registry)
    publisher.start()

    return {
        "publisher": publisher,
        "sync": SyncMetrics(registry=registry),
        "app_info": ApplicationInfo(version=version, registry=registry),
    }


__all__ = [
    "MetricsPublisher",
    "SyncMetrics",
    "ApplicationInfo",
    "initialize_metrics",
    "get_or_create_metric",
]
