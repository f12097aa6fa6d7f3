from typing import Dict, Mapping, Optional

SCRIPT_CONTENT_TYPE = "application/javascript; charset=utf-8"
SCRIPT_CACHE_CONTROL = "public, max-age=3600"  # 1h edge cache
EVENT_CONTENT_TYPE = "application/json; charset=utf-8"
EVENT_CACHE_CONTROL = "no-store"


def security_headers() -> Dict[str, str]:
    return {
        "x-content-type-options": "nosniff",
        "referrer-policy": "strict-origin-when-cross-origin",
    }


def merge_headers(*layers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """
    Merge header mappings in order, later layers overriding earlier ones.

    Names are lower-cased so "Vary" and "vary" collapse into one entry.
    Callers pass security headers last so nothing can override them.
    """
    merged: Dict[str, str] = {}
    for layer in layers:
        if not layer:
            continue
        for name, value in layer.items():
            merged[name.lower()] = value
    return merged
