"""
Exposes refdata-sync metrics to Prometheus.

A compare or migrate run lives for seconds to minutes, which is often
shorter than a scrape interval. Metrics can therefore be served over HTTP
for the lifetime of the process, pushed to a Pushgateway when the run
finishes, or both.
"""

import logging
import time
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Gauge,
    Info,
    push_to_gateway,
    start_http_server,
)

from . import get_or_create_metric

logger = logging.getLogger(__name__)


class MetricsPublisher:
    """
    Serves and/or pushes one registry.

    Args:
        port: Port for the /metrics HTTP endpoint (None disables it)
        pushgateway: Pushgateway address, e.g. "pushgateway:9091" (None disables pushing)
        job: Job label used when pushing
        registry: Prometheus registry to expose (default: global REGISTRY)
    """

    def __init__(
        self,
        port: Optional[int] = None,
        pushgateway: Optional[str] = None,
        job: str = "refdata-sync",
        registry: Optional[CollectorRegistry] = None,
    ):
        self.port = port
        self.pushgateway = pushgateway
        self.job = job
        self.registry = registry or REGISTRY
        self._server_started = False

    def start(self) -> None:
        """Start the HTTP endpoint, if a port is configured."""
        if self.port is None or self._server_started:
            return

        try:
            start_http_server(self.port, registry=self.registry)
        except OSError as e:
            if "Address already in use" in str(e):
                raise RuntimeError(
                    f"Metrics server port {self.port} is already in use. "
                    f"Stop the conflicting process or use a different --metrics-port."
                ) from e
            raise

        self._server_started = True
        logger.info(f"Metrics server started on port {self.port}")

    def push(self, grouping_key: Optional[dict[str, str]] = None) -> bool:
        """
        Push the registry to the Pushgateway, if one is configured.

        A failed push is logged and reported as False; it never fails the run.
        """
        if not self.pushgateway:
            return False

        try:
            push_to_gateway(
                self.pushgateway,
                job=self.job,
                registry=self.registry,
                grouping_key=grouping_key or {},
            )
        except OSError as e:
            logger.warning(f"Failed to push metrics to {self.pushgateway}: {e}")
            return False

        logger.debug(f"Pushed metrics to {self.pushgateway} (job={self.job})")
        return True

    def is_started(self) -> bool:
        return self._server_started


class ApplicationInfo:
    """Build information and run start time of the current process."""

    def __init__(
        self,
        app_name: str = "refdata-sync",
        version: str = "1.0.0",
        registry: Optional[CollectorRegistry] = None,
    ):
        self.registry = registry or REGISTRY
        self._start_time = time.time()

        self.info = get_or_create_metric(
            lambda: Info("refsync_build", "Build information", registry=self.registry),
            "refsync_build",
            self.registry,
        )
        self.info.info({"name": app_name, "version": version})

        self.start_time = get_or_create_metric(
            lambda: Gauge(
                "refsync_process_start_time_seconds",
                "Start time of the run, in unix seconds",
                registry=self.registry,
            ),
            "refsync_process_start_time_seconds",
            self.registry,
        )
        self.start_time.set(self._start_time)

    def get_uptime(self) -> float:
        """Seconds since the run started"""
        return time.time() - self._start_time
