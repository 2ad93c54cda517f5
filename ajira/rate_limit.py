"""Rate limiting for the Ajira backend.

Signed-in requests are keyed by user id, anonymous ones by client IP.
``X-Forwarded-For`` is only honored when the direct peer is a known proxy,
so clients cannot pick their own key.
"""

import ipaddress
import os

from fastapi import HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

from .auth import decode_token
from .config import get_settings
from .logging_config import get_logger

logger = get_logger("ajira.rate_limit")

# Override with TRUSTED_PROXY_CIDRS (comma-separated)
_DEFAULT_TRUSTED_CIDRS = [
    "10.0.0.0/8",
    "172.16.0.0/12",
    "192.168.0.0/16",
    "127.0.0.0/8",
    "::1/128",
]

Network = ipaddress.IPv4Network | ipaddress.IPv6Network

_trusted_networks: list[Network] | None = None


def load_trusted_networks(raw: str | None = None) -> list[Network]:
    """Parse trusted proxy CIDRs, skipping invalid entries."""
    if raw is None:
        raw = os.environ.get("TRUSTED_PROXY_CIDRS", "")
    cidrs = [s.strip() for s in raw.split(",") if s.strip()] if raw else _DEFAULT_TRUSTED_CIDRS
    networks: list[Network] = []
    for cidr in cidrs:
        try:
            networks.append(ipaddress.ip_network(cidr, strict=False))
        except ValueError:
            logger.warning(f"Ignoring invalid trusted proxy CIDR: {cidr!r}")
    return networks


def _get_trusted_networks() -> list[Network]:
    global _trusted_networks
    if _trusted_networks is None:
        _trusted_networks = load_trusted_networks()
    return _trusted_networks


def is_trusted_proxy(ip_str: str) -> bool:
    try:
        addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return any(addr in network for network in _get_trusted_networks())


def get_client_ip(request) -> str:
    """Resolve the client IP for rate limiting.

    Uses the leftmost ``X-Forwarded-For`` entry when the direct peer is a
    trusted proxy, otherwise the peer address itself.
    """
    direct_ip = get_remote_address(request)

    if is_trusted_proxy(direct_ip):
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip()
            if client_ip:
                return client_ip

    return direct_ip


def _session_token(request, cookie_name: str) -> str | None:
    authorization = request.headers.get("authorization") or ""
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token:
        return token
    return request.cookies.get(cookie_name)


def get_rate_limit_key(request) -> str:
    """Bucket key: ``user:<id>`` for a valid session, else ``ip:<client ip>``."""
    settings = get_settings()
    token = _session_token(request, settings.session_cookie_name)
    if token:
        try:
            user_id = decode_token(token, settings).get("sub")
        except HTTPException:
            user_id = None
        if user_id:
            return f"user:{user_id}"
    return f"ip:{get_client_ip(request)}"


limiter = Limiter(key_func=get_rate_limit_key)
