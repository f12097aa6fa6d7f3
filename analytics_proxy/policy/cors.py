"""
CORS policy for the analytics host.

Only the site origins derived from the serving host may read responses:
``https://<root>`` and ``https://www.<root>``, where ``<root>`` is the host
with its analytics subdomain prefix removed.
"""

from typing import Dict, FrozenSet, Optional

DEFAULT_SUBDOMAIN_PREFIX = "analytics."
ALLOW_METHODS = "GET,POST,OPTIONS"
ALLOW_HEADERS = "content-type"
MAX_AGE = "86400"


def root_domain(host: str, prefix: str = DEFAULT_SUBDOMAIN_PREFIX) -> str:
    """Strip the analytics subdomain prefix from the host, if present."""
    if prefix and host.startswith(prefix):
        return host[len(prefix):]
    return host


def allowed_origins(
    host: str, prefix: str = DEFAULT_SUBDOMAIN_PREFIX
) -> FrozenSet[str]:
    root = root_domain(host, prefix)
    return frozenset({f"https://{root}", f"https://www.{root}"})


def cors_headers(
    origin: Optional[str], host: str, prefix: str = DEFAULT_SUBDOMAIN_PREFIX
) -> Dict[str, str]:
    """
    Build the Access-Control-* headers for a request.

    - No Origin: methods/headers/max-age and Vary, but no allow-origin.
      Browsers do not enforce CORS on such requests.
    - Allowed Origin: the same, plus the origin echoed back.
    - Any other Origin: only ``Vary: Origin``. The request still reaches the
      upstream; the browser just refuses to hand the response to the page.
    """
    if not origin:
        return {
            "access-control-allow-methods": ALLOW_METHODS,
            "access-control-allow-headers": ALLOW_HEADERS,
            "access-control-max-age": MAX_AGE,
            "vary": "Origin",
        }

    if origin in allowed_origins(host, prefix):
        return {
            "access-control-allow-origin": origin,
            "access-control-allow-methods": ALLOW_METHODS,
            "access-control-allow-headers": ALLOW_HEADERS,
            "access-control-max-age": MAX_AGE,
            "vary": "Origin",
        }

    return {"vary": "Origin"}
