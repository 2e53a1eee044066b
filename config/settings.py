"""
Runtime settings, read once from the environment (.env supported).

Nothing here is a secret store; API keys come from the environment only.
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from None


def _env_list(name: str, default: str) -> List[str]:
    return [s.strip() for s in (os.getenv(name) or default).split(",") if s.strip()]


@dataclass(frozen=True)
class Settings:
    state_backend: str = "sql"                     # "sql" | "memory"
    default_initial_balance: float = 10000.0
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    coingecko_api_key: Optional[str] = None
    coingecko_timeout_sec: float = 10.0
    price_cache_ttl_sec: int = 0
    alert_sweep_interval_sec: float = 0.0          # 0 disables the background sweep
    notify_webhook_url: Optional[str] = None
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])

    @classmethod
    def from_env(cls) -> "Settings":
        backend = (os.getenv("STATE_BACKEND") or "sql").strip().lower()
        if backend not in ("sql", "memory"):
            raise RuntimeError(f"STATE_BACKEND must be 'sql' or 'memory', got {backend!r}")

        return cls(
            state_backend=backend,
            default_initial_balance=_env_float("DEFAULT_INITIAL_BALANCE", 10000.0),
            coingecko_base_url=os.getenv("COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3"),
            coingecko_api_key=os.getenv("COINGECKO_API_KEY") or None,
            coingecko_timeout_sec=_env_float("COINGECKO_TIMEOUT_SEC", 10.0),
            price_cache_ttl_sec=int(_env_float("PRICE_CACHE_TTL_SEC", 0)),
            alert_sweep_interval_sec=_env_float("ALERT_SWEEP_INTERVAL_SEC", 0.0),
            notify_webhook_url=os.getenv("NOTIFY_WEBHOOK_URL") or None,
            cors_origins=_env_list("CORS_ORIGINS", "http://localhost:3000"),
        )
