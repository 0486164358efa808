"""OpenTelemetry distributed tracing configuration.

Uses OTLP exporter for collectors; console exporter for development.
"""

import logging
import threading

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


class TelemetryConfig:
    """OpenTelemetry configuration for engine tracing.

    Spans cover dispatch, version management and every node step.
    Exporters: console, otlp, or none.
    """

    def __init__(
        self,
        service_name: str,
        service_version: str,
        enabled: bool = True,
        environment: str = "development",
    ) -> None:
        self.service_name = service_name
        self.service_version = service_version
        self.enabled = enabled
        self.environment = environment
        self.tracer_provider: TracerProvider | None = None

    def setup_telemetry(
        self,
        exporter_type: str = "console",
        otlp_endpoint: str | None = None,
        sample_rate: float = 1.0,
    ) -> TracerProvider | None:
        """Initialize OpenTelemetry tracing and set global tracer provider.

        Args:
            exporter_type: "console", "otlp", or "none".
            otlp_endpoint: OTLP gRPC endpoint (e.g. http://localhost:4317).
            sample_rate: Sampling rate 0.0–1.0.

        Returns:
            TracerProvider or None if disabled.
        """
        if not self.enabled:
            logger.info("Telemetry disabled")
            return None
        resource = Resource(
            attributes={
                SERVICE_NAME: self.service_name,
                SERVICE_VERSION: self.service_version,
                "deployment.environment": self.environment,
            }
        )
        self.tracer_provider = TracerProvider(
            resource=resource, sampler=TraceIdRatioBased(sample_rate)
        )

        if exporter_type == "none":
            logger.info("Telemetry enabled but no exporter configured")
            trace.set_tracer_provider(self.tracer_provider)
            return self.tracer_provider
        if exporter_type == "otlp" and otlp_endpoint:
            exporter = OTLPSpanExporter(
                endpoint=otlp_endpoint, insecure=otlp_endpoint.startswith("http://")
            )
            logger.info("Using OTLP span exporter: %s", otlp_endpoint)
        else:
            if exporter_type != "console":
                logger.warning(
                    "Unknown exporter type '%s', using console", exporter_type
                )
            exporter = ConsoleSpanExporter()

        self.tracer_provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(self.tracer_provider)
        logger.info(
            "OpenTelemetry initialized: service=%s, version=%s, exporter=%s",
            self.service_name,
            self.service_version,
            exporter_type,
        )
        return self.tracer_provider

    def instrument_sqlalchemy(self, engine: AsyncEngine) -> None:
        """Instrument SQLAlchemy (queries, duration)."""
        if not self.enabled or not self.tracer_provider:
            return
        SQLAlchemyInstrumentor().instrument(
            engine=engine.sync_engine,
            tracer_provider=self.tracer_provider,
        )
        logger.info("SQLAlchemy instrumentation enabled")

    def shutdown(self) -> None:
        """Shutdown tracer provider and flush remaining spans."""
        if self.tracer_provider:
            self.tracer_provider.shutdown()
            logger.info("Telemetry shutdown complete")


_telemetry: TelemetryConfig | None = None
_telemetry_lock = threading.RLock()


def get_telemetry() -> TelemetryConfig | None:
    """Return the process telemetry instance (set at startup)."""
    with _telemetry_lock:
        return _telemetry


def set_telemetry(telemetry: TelemetryConfig | None) -> None:
    """Set (or clear) the process telemetry instance."""
    global _telemetry
    with _telemetry_lock:
        _telemetry = telemetry
