from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from menu_modifiers.config import settings


def init_tracer() -> TracerProvider | None:
    if not settings.OPENTELEMETRY_COLLECTOR_ENDPOINT:
        return None

    resource = Resource(
        attributes={
            SERVICE_NAME: settings.OPENTELEMETRY_SERVICE_NAME,
        }
    )
    otlp_exporter = OTLPSpanExporter(
        endpoint=settings.OPENTELEMETRY_COLLECTOR_ENDPOINT,
        timeout=5,
    )
    provider = TracerProvider(resource=resource)
    processor = BatchSpanProcessor(otlp_exporter)
    provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)

    return provider
