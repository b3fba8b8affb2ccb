import logging
from contextlib import asynccontextmanager
from typing import Optional, Sequence

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from prewarm.keepalive import BackgroundTaskRegistry
from prewarm.origin import OriginFetcher
from prewarm.proxy import router
from prewarm.vars import (
    BACKGROUND_DRAIN_TIMEOUT,
    METRICS_PATH,
    ORIGIN_HOSTNAME,
    OTLP_ENDPOINT,
    OTLP_HEADERS,
    SERVICE_NAME,
)

logger = logging.getLogger("uvicorn.error")


class FilteringSpanExporter(SpanExporter):
    """
    Wrapper exporter that filters out noisy ASGI body spans from streaming responses.
    Every proxied chunk would otherwise show up as its own span.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        filtered_spans = [
            span
            for span in spans
            if not (
                span.attributes
                and span.attributes.get("asgi.event.type") == "http.response.body"
            )
        ]
        if filtered_spans:
            return self.exporter.export(filtered_spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def create_app(
    fetcher: Optional[OriginFetcher] = None,
    keep_alive: Optional[BackgroundTaskRegistry] = None,
    observability: bool = False,
) -> FastAPI:
    """
    Build the proxy application.

    The fetcher and the background registry live for the lifetime of the
    app; at shutdown pending cache warming gets BACKGROUND_DRAIN_TIMEOUT
    seconds to finish before the HTTP client is closed. With ``observability``
    the app exposes Prometheus metrics and exports traces.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.fetcher = fetcher or OriginFetcher()
        app.state.keep_alive = keep_alive or BackgroundTaskRegistry(logger)
        logger.info(f"Proxying to origin host {ORIGIN_HOSTNAME}")
        try:
            yield
        finally:
            await app.state.keep_alive.drain(BACKGROUND_DRAIN_TIMEOUT)
            await app.state.fetcher.aclose()

    app = FastAPI(lifespan=lifespan)
    if observability:
        # Registered before the catch-all proxy route so it is not proxied
        Instrumentator().instrument(app).expose(app, endpoint=METRICS_PATH)
        configure_tracing(app)
    app.include_router(router)
    return app


def configure_tracing(app: FastAPI) -> None:
    trace.set_tracer_provider(
        TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    )
    tracer_provider = trace.get_tracer_provider()
    if OTLP_ENDPOINT:
        otlp_exporter = OTLPSpanExporter(
            endpoint=OTLP_ENDPOINT,
            headers=OTLP_HEADERS or None,
        )

        # Wrap exporter with filtering to remove noisy ASGI body spans
        filtering_exporter = FilteringSpanExporter(otlp_exporter)
        span_processor = BatchSpanProcessor(filtering_exporter)
        tracer_provider.add_span_processor(span_processor)

    FastAPIInstrumentor.instrument_app(app, excluded_urls=METRICS_PATH)


app = create_app(observability=True)

# Add app_name to the metrics
app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME, "origin": ORIGIN_HOSTNAME})
