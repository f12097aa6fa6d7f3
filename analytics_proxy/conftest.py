import httpx
import pytest
from fastapi.testclient import TestClient

from analytics_proxy.server import create_app
from analytics_proxy.vars import ProxyConfig

TEST_UPSTREAM = "https://upstream.test"
TEST_HOST = "analytics.example.com"


class FakeUpstream:
    """Stand-in for the analytics collector, served through httpx.MockTransport."""

    def __init__(self, status_code=200, content=b"", headers=None, error=None):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(
            self.status_code, content=self.content, headers=self.headers
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def proxy_config():
    return ProxyConfig(upstream=TEST_UPSTREAM)


@pytest.fixture
def fake_upstream():
    return FakeUpstream(content=b"!function(){/* plausible */}();")


@pytest.fixture
def make_client():
    """Build a TestClient for a proxy app pointed at the given fake upstream."""

    def _make(upstream: FakeUpstream, config: ProxyConfig = None, host=TEST_HOST):
        app = create_app(
            config or ProxyConfig(upstream=TEST_UPSTREAM),
            transport=upstream.transport,
        )
        return TestClient(app, base_url=f"http://{host}")

    return _make


@pytest.fixture
def client(make_client, fake_upstream):
    return make_client(fake_upstream)
