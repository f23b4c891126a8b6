"""Query metrics tracking with OpenTelemetry support."""
from typing import Optional
from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter

_meter = metrics.get_meter("queryproc")
query_duration_histogram = _meter.create_histogram(
    name="queryproc.query.duration",
    description="Duration of query processing in seconds",
    unit="s",
)
query_counter = _meter.create_counter(
    name="queryproc.query.count",
    description="Number of processed queries",
    unit="1",
)


def record_query(driver: str, status: str, duration_sec: float) -> None:
    attributes = {"driver": driver, "status": status}
    query_duration_histogram.record(duration_sec, attributes)
    query_counter.add(1, attributes)


def configure_metrics(exporter_type: str = "none", otlp_endpoint: Optional[str] = None):
    """Configures the OpenTelemetry Metric Provider.

    Args:
        exporter_type: 'none', 'console', or 'otlp'
        otlp_endpoint: Optional endpoint for OTLP exporter
    """
    if exporter_type == "none":
        return

    reader = None
    if exporter_type == "console":
        reader = PeriodicExportingMetricReader(ConsoleMetricExporter())
    elif exporter_type == "otlp":
        endpoint = otlp_endpoint or "http://localhost:4317"
        reader = PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=endpoint))

    if reader:
        provider = MeterProvider(metric_readers=[reader])
        metrics.set_meter_provider(provider)
