import logging
from typing import Iterable, Optional, Tuple

logger = logging.getLogger("uvicorn.error")


def parse_allow_hosts(raw: Optional[str]) -> Tuple[str, ...]:
    """Split a comma-separated host list, trimming entries and dropping blanks."""
    if not raw:
        return ()
    return tuple(h.strip() for h in raw.split(",") if h.strip())


def is_host_allowed(allow_hosts: Iterable[str], host: str) -> bool:
    """
    Check the serving host against the configured allowlist.

    An empty allowlist means no restriction. Matching is exact: no wildcards,
    no suffix matching, and a port sent in the Host header is part of the value.
    """
    allow_hosts = tuple(allow_hosts or ())
    if not allow_hosts:
        return True
    if host in allow_hosts:
        return True
    logger.warning(f"Rejecting request for host not in allowlist: {host!r}")
    return False
