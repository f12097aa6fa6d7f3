from .forwarder import (
    UpstreamForwarder,
    UpstreamResponse,
    UpstreamUnavailableError,
    forward_headers,
)

__all__ = [
    "UpstreamForwarder",
    "UpstreamResponse",
    "UpstreamUnavailableError",
    "forward_headers",
]
