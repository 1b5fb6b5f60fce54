"""Client IP resolution shared by the rate limiter and correlation context.

Proxy headers win over the socket peer address. That is only correct
behind a reverse proxy that strips or overwrites these headers; exposed
directly, a client can spoof them and dodge per-IP limits.
"""

from starlette.requests import Request

# Checked in order; first usable value wins
PROXY_IP_HEADERS = (
    "X-Forwarded-For",
    "X-Real-IP",
    "Proxy-Client-IP",
    "WL-Proxy-Client-IP",
)

UNKNOWN = "unknown"


def _usable(value) -> bool:
    return bool(value) and value.strip().lower() != UNKNOWN


def get_client_ip(request: Request) -> str:
    """Resolve the caller's IP: proxy headers first, then the socket peer."""
    for header in PROXY_IP_HEADERS:
        value = request.headers.get(header)
        if _usable(value):
            # X-Forwarded-For is "client, proxy1, proxy2"
            first = value.split(",")[0].strip()
            if _usable(first):
                return first

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN
