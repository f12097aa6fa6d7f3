import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from analytics_proxy.policy.cors import DEFAULT_SUBDOMAIN_PREFIX
from analytics_proxy.policy.host_gate import parse_allow_hosts

SERVICE_NAME = os.getenv("SERVICE_NAME", "analytics-proxy")
HOST = os.environ.get("HOSTNAME", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "info").lower()

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")

DEFAULT_UPSTREAM = "https://plausible.io"
DEFAULT_SCRIPT_PATH = "/js/plausible.js"
DEFAULT_TIMEOUT = 30.0


def _parse_bool(raw: Optional[str], default: bool = False) -> bool:
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ProxyConfig:
    """Settings for one proxy process, built once and injected into the app."""

    upstream: str = DEFAULT_UPSTREAM
    allow_hosts: Tuple[str, ...] = ()
    subdomain_prefix: str = DEFAULT_SUBDOMAIN_PREFIX
    script_path: str = DEFAULT_SCRIPT_PATH
    timeout: float = DEFAULT_TIMEOUT
    expose_metrics: bool = False

    def __post_init__(self):
        # frozen, so normalise through object.__setattr__
        object.__setattr__(self, "upstream", self.upstream.rstrip("/"))
        if not self.script_path.startswith("/"):
            object.__setattr__(self, "script_path", "/" + self.script_path)

    @property
    def script_url(self) -> str:
        return f"{self.upstream}{self.script_path}"

    @property
    def event_url(self) -> str:
        return f"{self.upstream}/api/event"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ProxyConfig":
        env = os.environ if environ is None else environ
        return cls(
            upstream=env.get("UPSTREAM") or DEFAULT_UPSTREAM,
            allow_hosts=parse_allow_hosts(env.get("ALLOW_HOSTS")),
            subdomain_prefix=env.get("ANALYTICS_SUBDOMAIN", DEFAULT_SUBDOMAIN_PREFIX),
            script_path=env.get("UPSTREAM_SCRIPT_PATH") or DEFAULT_SCRIPT_PATH,
            timeout=float(env.get("PROXY_TIMEOUT", DEFAULT_TIMEOUT)),
            expose_metrics=_parse_bool(env.get("EXPOSE_METRICS")),
        )
