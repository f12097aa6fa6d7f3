from unittest.mock import Mock

from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export import SpanExportResult

from analytics_proxy.server import (
    FilteringSpanExporter,
    create_app,
    is_response_body_span,
)
from analytics_proxy.vars import ProxyConfig


def test_app_state_carries_config(fake_upstream):
    config = ProxyConfig(upstream="https://upstream.test", allow_hosts=("a.test",))
    app = create_app(config, transport=fake_upstream.transport)

    assert app.state.proxy_config is config
    assert app.state.forwarder.config is config


def test_create_app_reads_environment(monkeypatch):
    monkeypatch.setenv("UPSTREAM", "https://from-env.test")
    app = create_app()

    assert app.state.proxy_config.upstream == "https://from-env.test"


def test_metrics_hidden_by_default(make_client, fake_upstream):
    client = make_client(fake_upstream)

    assert client.get("/metrics").status_code == 404


def test_metrics_behind_host_gate(make_client, fake_upstream):
    config = ProxyConfig(
        upstream="https://upstream.test",
        allow_hosts=("a.test",),
        expose_metrics=True,
    )
    client = make_client(fake_upstream, config, host="other.test")

    r = client.get("/metrics")

    assert r.status_code == 403
    assert r.content == b""


def test_metrics_served_to_allowed_host(make_client, fake_upstream):
    config = ProxyConfig(
        upstream="https://upstream.test",
        allow_hosts=("a.test",),
        expose_metrics=True,
    )
    client = make_client(fake_upstream, config, host="a.test")

    assert client.get("/metrics").status_code == 200


def test_metrics_exposed_when_enabled(fake_upstream):
    config = ProxyConfig(upstream="https://upstream.test", expose_metrics=True)
    client = TestClient(create_app(config, transport=fake_upstream.transport))

    client.get("/p.js")
    r = client.get("/metrics")

    assert r.status_code == 200
    assert "http_request" in r.text


def test_no_docs_routes(client):
    assert client.get("/docs").status_code == 404
    assert client.get("/openapi.json").status_code == 404


def _span(attributes):
    span = Mock()
    span.attributes = attributes
    return span


def test_filtering_exporter_drops_body_spans():
    inner = Mock()
    inner.export.return_value = SpanExportResult.SUCCESS
    exporter = FilteringSpanExporter(inner)
    keep = _span({"proxy.method": "GET"})
    drop = _span({"asgi.event.type": "http.response.body"})

    assert exporter.export([keep, drop]) == SpanExportResult.SUCCESS

    inner.export.assert_called_once_with([keep])


def test_response_body_span_detection():
    assert is_response_body_span(_span({"asgi.event.type": "http.response.body"}))
    assert not is_response_body_span(_span({"asgi.event.type": "http.response.start"}))
    assert not is_response_body_span(_span(None))


def test_filtering_exporter_skips_empty_batches():
    inner = Mock()
    exporter = FilteringSpanExporter(inner)

    result = exporter.export([_span({"asgi.event.type": "http.response.body"})])

    assert result == SpanExportResult.SUCCESS
    inner.export.assert_not_called()
