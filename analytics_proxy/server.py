import logging
from typing import Optional, Sequence

import httpx
import uvicorn
from fastapi import Depends, FastAPI
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

from analytics_proxy.routes import (
    HostNotAllowedError,
    host_not_allowed_handler,
    require_allowed_host,
    router,
)
from analytics_proxy.upstream.forwarder import UpstreamForwarder
from analytics_proxy.vars import (
    HOST,
    LOG_LEVEL,
    OTLP_ENDPOINT,
    OTLP_HEADERS,
    PORT,
    SERVICE_NAME,
    ProxyConfig,
)

logger = logging.getLogger("uvicorn.error")


def is_response_body_span(span: ReadableSpan) -> bool:
    attributes = span.attributes or {}
    return attributes.get("asgi.event.type") == "http.response.body"


class FilteringSpanExporter(SpanExporter):
    """
    Wrapper exporter that drops ASGI `http.response.body` spans.

    The script and event routes stream upstream bytes chunk by chunk, and the
    FastAPI instrumentation opens one span per chunk sent. A single `/p.js`
    fetch would otherwise export dozens of spans carrying no proxy data,
    burying the `proxy.script` and `proxy.event` spans that hold the target
    URL, status and error.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        filtered_spans = [span for span in spans if not is_response_body_span(span)]
        if filtered_spans:
            return self.exporter.export(filtered_spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def configure_tracing() -> None:
    trace.set_tracer_provider(
        TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    )
    if OTLP_ENDPOINT:
        otlp_exporter = OTLPSpanExporter(
            endpoint=OTLP_ENDPOINT,
            headers=(OTLP_HEADERS.split(",") if OTLP_HEADERS else None),
        )
        trace.get_tracer_provider().add_span_processor(
            BatchSpanProcessor(FilteringSpanExporter(otlp_exporter))
        )
        logger.info(f"Exporting spans to {OTLP_ENDPOINT}")


def create_app(
    config: Optional[ProxyConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the proxy application.

    ``transport`` replaces the network transport of the upstream client,
    which lets tests point the proxy at an in-process fake upstream.
    """
    config = config or ProxyConfig.from_env()

    app = FastAPI(
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        dependencies=[Depends(require_allowed_host)],
    )
    app.add_exception_handler(HostNotAllowedError, host_not_allowed_handler)
    app.state.proxy_config = config
    app.state.forwarder = UpstreamForwarder(config, transport=transport)

    instrumentator = Instrumentator()
    instrumentator.instrument(app)
    # registered ahead of the catch-all route, which would otherwise answer 404
    if config.expose_metrics:
        instrumentator.expose(app, include_in_schema=False)

    FastAPIInstrumentor.instrument_app(app)

    app.include_router(router)

    logger.info(
        f"Proxying analytics to {config.upstream}"
        + (f" for hosts {', '.join(config.allow_hosts)}" if config.allow_hosts else "")
    )
    return app


configure_tracing()

app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})

app = create_app()


def main() -> None:
    uvicorn.run(app, host=HOST, port=PORT, log_level=LOG_LEVEL)
