import logging
from typing import AsyncIterator, Dict, Optional

import httpx
from fastapi import Request
from opentelemetry import trace

from analytics_proxy.utils import header_or_empty
from analytics_proxy.utils.traced_requests import traced_request
from analytics_proxy.vars import ProxyConfig

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Only these inbound headers ever reach the upstream
FORWARDED_HEADERS = ("user-agent", "referer")


class UpstreamUnavailableError(Exception):
    """The upstream could not be reached, so no response exists to pass through."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


class UpstreamResponse:
    """
    An open, not yet consumed upstream response.

    The body is read lazily through ``iter_body`` so large payloads are
    streamed to the caller rather than buffered. ``aclose`` must run once
    the caller is done, which also releases the per-request client.
    """

    def __init__(self, response: httpx.Response, client: httpx.AsyncClient):
        self._response = response
        self._client = client
        self._closed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    async def iter_body(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        finally:
            # runs on normal completion and when the client disconnects mid-stream,
            # where Starlette skips the response background task
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()
        await self._client.aclose()


def forward_headers(request: Request) -> Dict[str, bytes]:
    """
    Pick the inbound headers passed upstream, defaulting missing ones to b"".

    Starlette decodes header values as latin-1, so encoding them back the same
    way restores the bytes the browser sent, including obs-text.
    """
    return {
        name: header_or_empty(request.headers, name).encode("latin-1")
        for name in FORWARDED_HEADERS
    }


class UpstreamForwarder:
    def __init__(
        self,
        config: ProxyConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.timeout),
            follow_redirects=False,
            transport=self._transport,
        )

    async def fetch_script(self, request: Request) -> UpstreamResponse:
        """GET the tracking script from the upstream."""
        return await self._send(
            "proxy.script",
            "GET",
            self.config.script_url,
            headers=forward_headers(request),
        )

    async def forward_event(self, request: Request) -> UpstreamResponse:
        """POST the inbound event body to the upstream byte for byte."""
        body = await request.body()
        headers = {"content-type": b"application/json"}
        headers.update(forward_headers(request))
        return await self._send(
            "proxy.event",
            "POST",
            self.config.event_url,
            headers=headers,
            content=body,
            extra_attrs={"proxy.request_bytes": len(body)},
        )

    async def _send(
        self,
        operation: str,
        method: str,
        url: str,
        headers: Dict[str, bytes],
        content: Optional[bytes] = None,
        extra_attrs: Optional[Dict] = None,
    ) -> UpstreamResponse:
        client = self._new_client()
        with traced_request(
            tracer,
            operation,
            method,
            url,
            f"Proxying {method} -> {url}",
            extra_attrs,
        ) as span:
            try:
                upstream_request = client.build_request(
                    method, url, headers=headers, content=content
                )
                response = await client.send(upstream_request, stream=True)
            except httpx.TimeoutException as e:
                await client.aclose()
                logger.error(f"Upstream timeout for {url}: {e}")
                span.set_attribute("proxy.error", "timeout")
                raise UpstreamUnavailableError(504, "Gateway timeout") from e
            except (httpx.HTTPError, httpx.InvalidURL, UnicodeError) as e:
                await client.aclose()
                logger.error(f"Failed to reach upstream {url}: {e!r}")
                span.set_attribute("proxy.error", "connection_failed")
                raise UpstreamUnavailableError(502, "Bad gateway") from e

            span.set_attribute("proxy.status_code", response.status_code)
            logger.debug(f"Upstream {url} answered {response.status_code}")
            return UpstreamResponse(response, client)
