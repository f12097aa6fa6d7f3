from .cors import allowed_origins, cors_headers, root_domain
from .headers import merge_headers, security_headers
from .host_gate import is_host_allowed, parse_allow_hosts

__all__ = [
    "allowed_origins",
    "cors_headers",
    "root_domain",
    "merge_headers",
    "security_headers",
    "is_host_allowed",
    "parse_allow_hosts",
]
