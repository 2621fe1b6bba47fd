# vaultrelay/core/rate_limit.py

from slowapi import Limiter
from slowapi.util import get_remote_address

DEFAULT_LIMIT = "600/minute"


def build_limiter(limit: str = DEFAULT_LIMIT, enabled: bool = True) -> Limiter:
    """
    Per-app limiter keyed by client address.
    Applied to every route through SlowAPIMiddleware (default_limits).
    """
    return Limiter(
        key_func=get_remote_address,
        default_limits=[limit],
        enabled=enabled,
    )
