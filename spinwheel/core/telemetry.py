"""
Telemetry configuration (Metrics & Tracing) and the spin telemetry sink.
Sets up Prometheus instrumentation and OpenTelemetry, and records every
spin's decision context for offline balancing.
"""
import logging

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator

from spinwheel.config import get_settings
from spinwheel.models.schemas import SpinTelemetryEvent

SPINS_TOTAL = Counter(
    "spinwheel_spins_total",
    "Committed spins by tier, reward category and pity state",
    ["tier", "category", "pity"],
)

GRANTS_TOTAL = Counter(
    "spinwheel_grants_total",
    "Grant attempts by resulting status",
    ["status"],
)


class LoggingSpinTelemetrySink:
    """
    Telemetry sink writing one structured log record per spin.
    The JSON formatter lifts the `telemetry` extra into the output line.
    """

    def __init__(self, logger_name: str = "spinwheel.telemetry") -> None:
        self._logger = logging.getLogger(logger_name)

    def record(self, event: SpinTelemetryEvent) -> None:
        SPINS_TOTAL.labels(
            tier=event.tier,
            category=event.category,
            pity=str(event.was_pity).lower(),
        ).inc()
        self._logger.info(
            f"spin {event.spin_id}: {event.tier} -> {event.reward_id}",
            extra={
                "event": "spin",
                "user_id": event.user_id,
                "tier": event.tier,
                "spin_id": event.spin_id,
                "reward_id": event.reward_id,
                "telemetry": event.model_dump(mode="json"),
            },
        )


def setup_telemetry(app: FastAPI) -> None:
    """
    Setup Observability (Metrics & Tracing).

    1. Prometheus Metrics via /metrics
    2. OpenTelemetry Tracing via OTLP
    """
    settings = get_settings()

    # -------------------------------------------------------------------------
    # 1. Prometheus Metrics
    # -------------------------------------------------------------------------
    if settings.ENABLE_PROMETHEUS:
        instrumentator = Instrumentator(
            should_group_status_codes=False,
            should_ignore_untemplated=True,
            should_respect_env_var=True,
            should_instrument_requests_inprogress=True,
            excluded_handlers=["/metrics", "/health", "/health/ready"],
            env_var_name="ENABLE_METRICS",
            inprogress_name="inprogress",
            inprogress_labels=True,
        )
        instrumentator.instrument(app).expose(app, include_in_schema=False)

    # -------------------------------------------------------------------------
    # 2. OpenTelemetry Tracing
    # -------------------------------------------------------------------------
    if settings.ENABLE_OTEL:
        resource = Resource.create(attributes={
            "service.name": settings.APP_NAME,
            "service.version": settings.APP_VERSION,
            "deployment.environment": "production" if not settings.DEBUG else "development",
        })

        provider = TracerProvider(resource=resource)

        # Default endpoint is localhost:4317
        processor = BatchSpanProcessor(OTLPSpanExporter())
        provider.add_span_processor(processor)

        trace.set_tracer_provider(provider)

        FastAPIInstrumentor.instrument_app(app, tracer_provider=provider)
