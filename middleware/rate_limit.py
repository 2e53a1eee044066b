# middleware/rate_limit.py
"""
Per-user and per-IP request limits (slowapi, in-memory or Redis storage).

Usage in route files:
    from middleware.rate_limit import limiter

    @router.post("/{user_id}/buy")
    @limiter.limit(TRADE_RATE_LIMIT)
    async def buy(request: Request, user_id: str, ...):
        ...
"""
import os

from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request


def _get_rate_limit_key(request: Request) -> str:
    """
    Identify the caller for rate-limiting.

    Portfolio routes carry an unauthenticated user id in the path, so the key
    pairs it with the client address. Trade routes also carry a per-address
    limit (`client_address_key`), so rotating ids from one client does not
    reset the budget. Everything else is keyed by client address alone.
    """
    address = get_remote_address(request)
    user_id = request.path_params.get("user_id")
    if user_id:
        return f"user:{user_id}@{address}"
    return address


def client_address_key(request: Request) -> str:
    return f"ip:{get_remote_address(request)}"


# ─── Default limits ────────────────────────────────────────────────
# Env-overridable so you can tune per-environment without redeploying.
DEFAULT_RATE_LIMIT = os.getenv("RATE_LIMIT_DEFAULT", "60/minute")
TRADE_RATE_LIMIT = os.getenv("RATE_LIMIT_TRADES", "20/minute")
TRADE_IP_RATE_LIMIT = os.getenv("RATE_LIMIT_TRADES_PER_IP", "60/minute")
PRICE_RATE_LIMIT = os.getenv("RATE_LIMIT_PRICES", "30/minute")

limiter = Limiter(
    key_func=_get_rate_limit_key,
    default_limits=[DEFAULT_RATE_LIMIT],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
    strategy="fixed-window",
    enabled=os.getenv("RATE_LIMIT_ENABLED", "1").lower() not in ("0", "false", "no"),
)
