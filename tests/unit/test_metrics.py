"""
Unit tests for src/utils/metrics

Covers the metrics server wrapper, run-level sync metrics, application info
and the get_or_create_metric helper used by the module-level counters.
"""

from unittest.mock import patch

import pytest
from prometheus_client import CollectorRegistry, Counter

from utils.metrics import (
    ApplicationInfo,
    MetricsPublisher,
    SyncMetrics,
    get_or_create_metric,
    initialize_metrics,
)


@pytest.fixture
def registry():
    return CollectorRegistry()


class TestGetOrCreateMetric:
    """Test metric registration helper"""

    def test_creates_new_metric(self, registry):
        """Test a metric is created when the name is free"""
        # Act
        counter = get_or_create_metric(
            lambda: Counter("widgets_total", "Widgets", registry=registry),
            "widgets_total",
            registry,
        )

        # Assert
        counter.inc()
        assert registry.get_sample_value("widgets_total") == 1.0

    def test_returns_existing_metric_on_duplicate(self, registry):
        """Test registering the same metric twice returns the first instance"""
        # Arrange
        def factory():
            return Counter("widgets_total", "Widgets", registry=registry)

        first = get_or_create_metric(factory, "widgets_total", registry)

        # Act
        second = get_or_create_metric(factory, "widgets_total", registry)

        # Assert
        assert second is first

    def test_factory_error_propagates(self, registry):
        """Test errors raised while creating a new metric propagate"""
        # Arrange
        def factory():
            raise ValueError("invalid metric")

        # Act & Assert
        with pytest.raises(ValueError, match="invalid metric"):
            get_or_create_metric(factory, "missing_metric", registry)


class TestMetricsPublisher:
    """Test MetricsPublisher class"""

    @patch("utils.metrics.publisher.start_http_server")
    def test_no_port_does_not_serve(self, mock_start):
        """Test start is a no-op without a port"""
        publisher = MetricsPublisher()

        publisher.start()

        mock_start.assert_not_called()
        assert publisher.is_started() is False

    @patch("utils.metrics.publisher.start_http_server")
    def test_start(self, mock_start, registry):
        """Test the HTTP server is started once with the registry"""
        # Arrange
        publisher = MetricsPublisher(port=9200, registry=registry)

        # Act
        publisher.start()
        publisher.start()

        # Assert
        mock_start.assert_called_once_with(9200, registry=registry)
        assert publisher.is_started() is True

    @patch("utils.metrics.publisher.start_http_server")
    def test_start_port_in_use(self, mock_start, registry):
        """Test a busy port is reported with a clear error"""
        # Arrange
        mock_start.side_effect = OSError("[Errno 98] Address already in use")
        publisher = MetricsPublisher(port=9200, registry=registry)

        # Act & Assert
        with pytest.raises(RuntimeError, match="9200 is already in use"):
            publisher.start()
        assert publisher.is_started() is False

    @patch("utils.metrics.publisher.start_http_server")
    def test_start_other_os_error(self, mock_start, registry):
        """Test other OS errors propagate unchanged"""
        mock_start.side_effect = OSError("Permission denied")
        publisher = MetricsPublisher(port=80, registry=registry)

        with pytest.raises(OSError, match="Permission denied"):
            publisher.start()


class TestMetricsPush:
    """Test pushing to a Pushgateway"""

    @patch("utils.metrics.publisher.push_to_gateway")
    def test_push(self, mock_push, registry):
        """Test the registry is pushed under the job and grouping key"""
        # Arrange
        publisher = MetricsPublisher(pushgateway="pushgateway:9091", registry=registry)

        # Act
        pushed = publisher.push(grouping_key={"command": "migrate"})

        # Assert
        assert pushed is True
        mock_push.assert_called_once_with(
            "pushgateway:9091",
            job="refdata-sync",
            registry=registry,
            grouping_key={"command": "migrate"},
        )

    @patch("utils.metrics.publisher.push_to_gateway")
    def test_push_without_gateway(self, mock_push, registry):
        """Test nothing is pushed when no gateway is configured"""
        assert MetricsPublisher(registry=registry).push() is False
        mock_push.assert_not_called()

    @patch("utils.metrics.publisher.push_to_gateway")
    def test_push_failure_is_not_fatal(self, mock_push, registry):
        """Test an unreachable gateway is reported as False"""
        # Arrange
        mock_push.side_effect = OSError("Connection refused")
        publisher = MetricsPublisher(pushgateway="pushgateway:9091", registry=registry)

        # Act & Assert
        assert publisher.push() is False


class TestSyncMetrics:
    """Test run-level sync metrics"""

    def test_record_migration_run(self, registry):
        """Test a migration run updates counter, histogram and error gauge"""
        # Arrange
        metrics = SyncMetrics(registry=registry)

        # Act
        metrics.record_migration_run(status="completed_with_errors", duration=12.5, errors=3)

        # Assert
        assert registry.get_sample_value(
            "refsync_migration_runs_total", {"status": "completed_with_errors"}
        ) == 1.0
        assert registry.get_sample_value("refsync_migration_duration_seconds_sum") == 12.5
        assert registry.get_sample_value("refsync_migration_last_run_errors") == 3.0
        assert registry.get_sample_value(
            "refsync_last_run_timestamp", {"command": "migrate"}
        ) > 0

    def test_record_comparison_run(self, registry):
        """Test comparison runs are counted by outcome"""
        # Arrange
        metrics = SyncMetrics(registry=registry)

        # Act
        metrics.record_comparison_run(has_differences=True)
        metrics.record_comparison_run(has_differences=False)
        metrics.record_comparison_run(has_differences=False)

        # Assert
        assert registry.get_sample_value(
            "refsync_comparison_runs_total", {"status": "differences"}
        ) == 1.0
        assert registry.get_sample_value(
            "refsync_comparison_runs_total", {"status": "in_sync"}
        ) == 2.0
        assert registry.get_sample_value(
            "refsync_last_run_timestamp", {"command": "compare"}
        ) > 0

    def test_repeated_construction_shares_metrics(self, registry):
        """Test creating SyncMetrics twice on one registry does not fail"""
        first = SyncMetrics(registry=registry)
        second = SyncMetrics(registry=registry)

        assert second.migration_runs_total is first.migration_runs_total


class TestApplicationInfo:
    """Test application info metric"""

    def test_info_labels(self, registry):
        """Test name and version are exported"""
        ApplicationInfo(version="2.3.4", registry=registry)

        assert registry.get_sample_value(
            "refsync_build_info", {"name": "refdata-sync", "version": "2.3.4"}
        ) == 1.0

    def test_start_time_and_uptime(self, registry):
        """Test the start time gauge and uptime come from the same clock"""
        # Arrange
        with patch("utils.metrics.publisher.time.time", return_value=1000.0):
            app_info = ApplicationInfo(registry=registry)

        # Act
        with patch("utils.metrics.publisher.time.time", return_value=1042.0):
            uptime = app_info.get_uptime()

        # Assert
        assert registry.get_sample_value("refsync_process_start_time_seconds") == 1000.0
        assert uptime == 42.0

class TestInitializeMetrics:
    """Test initialize_metrics"""

    @patch("utils.metrics.publisher.start_http_server")
    def test_returns_all_metrics(self, mock_start, registry):
        """Test the server is started and all metric groups are returned"""
        # Act
        result = initialize_metrics(port=9300, registry=registry, version="1.0.0")

        # Assert
        mock_start.assert_called_once_with(9300, registry=registry)
        assert set(result) == {"publisher", "sync", "app_info"}
        assert isinstance(result["sync"], SyncMetrics)
        assert result["publisher"].is_started() is True
