from typing import Mapping


def header_or_empty(headers: Mapping[str, str], name: str) -> str:
    """Return a request header value, or an empty string when it is missing."""
    return headers.get(name) or ""
