"""
Prometheus metrics for comparison and migration runs.
"""

from prometheus_client import Counter, Histogram

from utils.metrics import get_or_create_metric

RECORDS_WRITTEN = get_or_create_metric(
    lambda: Counter(
        "refsync_records_written_total",
        "Records successfully written to the target",
        ["table", "phase"],
    ),
    "refsync_records_written_total",
)

RECORD_ERRORS = get_or_create_metric(
    lambda: Counter(
        "refsync_record_errors_total",
        "Per-item write faults recorded",
        ["table", "phase"],
    ),
    "refsync_record_errors_total",
)

BATCHES_SUBMITTED = get_or_create_metric(
    lambda: Counter(
        "refsync_batches_submitted_total",
        "Batch requests submitted to the target",
        ["phase"],
    ),
    "refsync_batches_submitted_total",
)

PHASE_DURATION = get_or_create_metric(
    lambda: Histogram(
        "refsync_phase_duration_seconds",
        "Duration of each migration phase",
        ["phase"],
        buckets=[0.1, 0.5, 1, 5, 10, 30, 60, 120, 300, 600, 1800],
    ),
    "refsync_phase_duration_seconds",
)

COMPARISON_DIFFERENCES = get_or_create_metric(
    lambda: Counter(
        "refsync_comparison_differences_total",
        "Record differences found by the comparator",
        ["table", "difference_type"],
    ),
    "refsync_comparison_differences_total",
)
