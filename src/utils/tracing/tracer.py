"""
Tracer setup for OpenTelemetry.

Exporters are chosen from the environment:

- OTLP_ENDPOINT: gRPC endpoint of an OTLP collector (Jaeger, Tempo, ...)
- OTLP_INSECURE: "false" to require TLS towards the collector
- TRACE_CONSOLE: "true" to print finished spans on stdout
- TRACE_SAMPLING_RATE: fraction of runs to trace (default 1.0)
"""

import logging
import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

logger = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "refsync"

_provider: TracerProvider | None = None


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _sampling_rate(sampling_rate: float | None) -> float:
    if sampling_rate is None:
        raw = os.getenv("TRACE_SAMPLING_RATE", "1.0")
        try:
            sampling_rate = float(raw)
        except ValueError:
            logger.warning(f"Invalid TRACE_SAMPLING_RATE {raw!r}, tracing every run")
            sampling_rate = 1.0
    return min(max(sampling_rate, 0.0), 1.0)


def initialize_tracing(
    service_name: str = "refdata-sync",
    service_version: str = "1.0.0",
    otlp_endpoint: str | None = None,
    console_export: bool | None = None,
    sampling_rate: float | None = None,
) -> TracerProvider:
    """
    Install the global tracer provider.

    Arguments left as None are read from the environment. Calling it again
    returns the provider already installed.

    Returns:
        The installed tracer provider
    """
    global _provider

    if _provider is not None:
        logger.debug("Tracing already initialized")
        return _provider

    rate = _sampling_rate(sampling_rate)
    provider = TracerProvider(
        resource=Resource(attributes={
            SERVICE_NAME: service_name,
            SERVICE_VERSION: service_version,
        }),
        sampler=ParentBased(TraceIdRatioBased(rate)),
    )

    exporters = []

    endpoint = otlp_endpoint or os.getenv("OTLP_ENDPOINT")
    if endpoint:
        try:
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(
                endpoint=endpoint,
                insecure=_env_flag("OTLP_INSECURE", "true"),
            )))
            exporters.append(f"otlp({endpoint})")
        except Exception as e:
            logger.warning(f"Failed to configure OTLP exporter: {e}")

    if console_export if console_export is not None else _env_flag("TRACE_CONSOLE"):
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        exporters.append("console")

    trace.set_tracer_provider(provider)
    _provider = provider

    logger.debug(
        f"Tracing initialized for {service_name} "
        f"(exporters: {', '.join(exporters) or 'none'}, sampling: {rate})"
    )
    return provider


def get_tracer() -> trace.Tracer:
    """
    Return the tracer used for refsync spans.

    Before initialize_tracing() runs this resolves to the OpenTelemetry
    default provider, so spans are no-ops.
    """
    return trace.get_tracer(INSTRUMENTATION_NAME)


def shutdown_tracing(timeout: int = 30) -> None:
    """Flush pending spans and shut the provider down."""
    global _provider

    if _provider is None:
        return

    try:
        _provider.force_flush(timeout * 1000)
        _provider.shutdown()
        logger.debug("Tracing shutdown complete")
    except Exception as e:
        logger.error(f"Error during tracing shutdown: {e}")
    finally:
        _provider = None


def instrument_requests() -> None:
    """
    Trace outgoing HTTP calls made with requests.

    Needs the optional opentelemetry-instrumentation-requests package.
    """
    try:
        from opentelemetry.instrumentation.requests import RequestsInstrumentor
    except ImportError:
        logger.debug("opentelemetry-instrumentation-requests not installed")
        return

    instrumentor = RequestsInstrumentor()
    if not instrumentor.is_instrumented_by_opentelemetry:
        instrumentor.instrument()
        logger.debug("requests instrumentation enabled")
