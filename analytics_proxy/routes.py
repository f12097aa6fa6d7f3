import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from analytics_proxy.policy.cors import cors_headers
from analytics_proxy.policy.headers import (
    EVENT_CACHE_CONTROL,
    EVENT_CONTENT_TYPE,
    SCRIPT_CACHE_CONTROL,
    SCRIPT_CONTENT_TYPE,
    merge_headers,
    security_headers,
)
from analytics_proxy.policy.host_gate import is_host_allowed
from analytics_proxy.upstream.forwarder import (
    UpstreamForwarder,
    UpstreamResponse,
    UpstreamUnavailableError,
)
from analytics_proxy.vars import ProxyConfig

router = APIRouter()
logger = logging.getLogger("uvicorn.error")

SCRIPT_PATH = "/p.js"
EVENT_PATH = "/api/event"

# Every method reaches the dispatcher so unknown ones get the 404 fallback
ALL_METHODS = [
    "GET",
    "POST",
    "PUT",
    "DELETE",
    "PATCH",
    "HEAD",
    "OPTIONS",
    "TRACE",
]


def get_proxy_config(request: Request) -> ProxyConfig:
    return request.app.state.proxy_config


def get_forwarder(request: Request) -> UpstreamForwarder:
    return request.app.state.forwarder


class HostNotAllowedError(Exception):
    """The Host header is not in the configured allowlist."""


def require_allowed_host(request: Request) -> None:
    """App-wide dependency, so every route, /metrics included, sits behind the gate."""
    config = get_proxy_config(request)
    host = request.headers.get("host", "")
    if not is_host_allowed(config.allow_hosts, host):
        raise HostNotAllowedError(host)


async def host_not_allowed_handler(request: Request, exc: HostNotAllowedError) -> Response:
    # no body and no CORS headers, so probing clients learn nothing
    return Response(status_code=403)


def _request_cors(request: Request, config: ProxyConfig) -> dict:
    return cors_headers(
        request.headers.get("origin"),
        request.headers.get("host", ""),
        config.subdomain_prefix,
    )


def _stream_upstream(
    upstream: UpstreamResponse, content_type: str, cache_control: str, cors: dict
) -> StreamingResponse:
    headers = merge_headers(
        {"content-type": content_type, "cache-control": cache_control},
        cors,
        security_headers(),
    )
    return StreamingResponse(
        upstream.iter_body(),
        status_code=upstream.status_code,
        headers=headers,
        background=BackgroundTask(upstream.aclose),
    )


def _upstream_failure(error: UpstreamUnavailableError, cors: dict) -> Response:
    return PlainTextResponse(
        error.detail,
        status_code=error.status_code,
        headers=merge_headers(cors, security_headers()),
    )


@router.api_route("/{path:path}", methods=ALL_METHODS, include_in_schema=False)
async def dispatch(
    request: Request,
    path: str,
    config: ProxyConfig = Depends(get_proxy_config),
    forwarder: UpstreamForwarder = Depends(get_forwarder),
) -> Response:
    """
    Route an allowed request onto one of the proxy routes.

    The host gate has already run as an app dependency. Checks here run in a
    fixed order: preflight, script, event, then the 404 fallback.
    """
    host = request.headers.get("host", "")
    method = request.method
    url_path = request.url.path
    cors = _request_cors(request, config)
    logger.debug(f"Dispatching {method} {url_path} for host {host}")

    if method == "OPTIONS":
        return Response(
            status_code=204, headers=merge_headers(cors, security_headers())
        )

    try:
        if method == "GET" and url_path == SCRIPT_PATH:
            upstream = await forwarder.fetch_script(request)
            return _stream_upstream(
                upstream, SCRIPT_CONTENT_TYPE, SCRIPT_CACHE_CONTROL, cors
            )

        if method == "POST" and url_path == EVENT_PATH:
            upstream = await forwarder.forward_event(request)
            return _stream_upstream(
                upstream, EVENT_CONTENT_TYPE, EVENT_CACHE_CONTROL, cors
            )
    except UpstreamUnavailableError as e:
        return _upstream_failure(e, cors)

    return PlainTextResponse("Not found", status_code=404, headers=cors)
