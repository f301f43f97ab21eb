"""
Run-level metrics for comparison and migration runs.

Per-record and per-phase metrics live next to the code that produces them;
this class records one observation per completed run.
"""

import logging
import time
from typing import Optional

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    CollectorRegistry,
    REGISTRY,
)

from . import get_or_create_metric

logger = logging.getLogger(__name__)


class SyncMetrics:
    """
    Metrics for reference data sync runs

    Tracks run outcomes, durations and error totals.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize sync metrics

        Args:
            registry: Custom Prometheus registry (default: global REGISTRY)
        """
        self.registry = registry or REGISTRY

        self.migration_runs_total = get_or_create_metric(
            lambda: Counter(
                "refsync_migration_runs_total",
                "Total number of migration runs",
                ["status"],
                registry=self.registry,
            ),
            "refsync_migration_runs_total",
            self.registry,
        )

        self.migration_duration_seconds = get_or_create_metric(
            lambda: Histogram(
                "refsync_migration_duration_seconds",
                "Duration of migration runs in seconds",
                buckets=(1, 5, 10, 30, 60, 120, 300, 600, 1800, 3600),
                registry=self.registry,
            ),
            "refsync_migration_duration_seconds",
            self.registry,
        )

        self.migration_errors = get_or_create_metric(
            lambda: Gauge(
                "refsync_migration_last_run_errors",
                "Record errors in the last migration run",
                registry=self.registry,
            ),
            "refsync_migration_last_run_errors",
            self.registry,
        )

        self.comparison_runs_total = get_or_create_metric(
            lambda: Counter(
                "refsync_comparison_runs_total",
                "Total number of comparison runs",
                ["status"],
                registry=self.registry,
            ),
            "refsync_comparison_runs_total",
            self.registry,
        )

        self.last_run_timestamp = get_or_create_metric(
            lambda: Gauge(
                "refsync_last_run_timestamp",
                "Timestamp of the last run",
                ["command"],
                registry=self.registry,
            ),
            "refsync_last_run_timestamp",
            self.registry,
        )

    def record_migration_run(self, status: str, duration: float, errors: int) -> None:
        """
        Record a completed migration run

        Args:
            status: Run status (completed, completed_with_errors, dry_run)
            duration: Duration in seconds
            errors: Number of record errors
        """
        self.migration_runs_total.labels(status=status).inc()
        self.migration_duration_seconds.observe(duration)
        self.migration_errors.set(errors)
        self.last_run_timestamp.labels(command="migrate").set(time.time())

        logger.info(
            f"Recorded migration run: status={status}, "
            f"duration={duration:.2f}s, errors={errors}"
        )

    def record_comparison_run(self, has_differences: bool) -> None:
        """
        Record a completed comparison run

        Args:
            has_differences: Whether any table or relationship differed
        """
        status = "differences" if has_differences else "in_sync"
        self.comparison_runs_total.labels(status=status).inc()
        self.last_run_timestamp.labels(command="compare").set(time.time())
