from __future__ import annotations

import asyncio
import logging
import math
from typing import Callable, Dict, Iterable, List, Optional

from schemas.alerts import Alert, AlertKey, PriceObservation
from services.errors import InvalidAmountError, NotFoundError, PersistError

logger = logging.getLogger(__name__)


def _alert_key(user: str, coin: str) -> AlertKey:
    return ((user or "").strip(), (coin or "").strip().lower())


class AlertRegistry:
    """
    Owns the active alerts and the last observed price per canonical coin.

    `lock` serialises every write. The evaluator holds it while it reads a
    coin's previous price and records the new one, so a crossing is always
    judged against the value it replaces.
    """

    def __init__(self, on_commit: Optional[Callable[[], None]] = None):
        self._alerts: Dict[AlertKey, Alert] = {}
        self._prices: Dict[str, float] = {}
        self._on_commit = on_commit
        self.lock = asyncio.Lock()

    # ── persistence ─────────────────────────────────────────────────

    def load(self, alerts: Iterable[Alert], prices: Dict[str, PriceObservation]) -> None:
        self._alerts = {a.key: a for a in alerts}
        self._prices = {coin_id: obs.last_price for coin_id, obs in prices.items()}

    def commit(self) -> None:
        if self._on_commit is not None:
            self._on_commit()

    # ── alerts ──────────────────────────────────────────────────────

    async def set_alert(self, user: str, coin: str, target_price: float) -> AlertKey:
        """Upsert the alert for (user, coin). The previous target, if any, is discarded."""
        if (
            not isinstance(target_price, (int, float))
            or not math.isfinite(target_price)
            or target_price <= 0
        ):
            raise InvalidAmountError("Target price must be greater than zero")

        key = _alert_key(user, coin)
        if not key[0] or not key[1]:
            raise InvalidAmountError("User and coin are required")

        async with self.lock:
            self._alerts[key] = Alert(user=key[0], coin=key[1], target_price=float(target_price))
            logger.info("alert_set coin=%s target=%.4f", key[1], target_price)
            self._commit_or_raise("Alert set but failed to save")
        return key

    def list_alerts(self) -> List[Alert]:
        return list(self._alerts.values())

    def get_alert(self, user: str, coin: str) -> Alert:
        alert = self._alerts.get(_alert_key(user, coin))
        if alert is None:
            raise NotFoundError(f"No alert for {user} on {coin}")
        return alert

    async def remove_alert(self, user: str, coin: str) -> Alert:
        async with self.lock:
            alert = self._alerts.pop(_alert_key(user, coin), None)
            if alert is None:
                raise NotFoundError(f"No alert for {user} on {coin}")
            self._commit_or_raise("Alert removed but failed to save")
        return alert

    # ── price observations ──────────────────────────────────────────

    def get_last_price(self, coin_id: str) -> Optional[float]:
        return self._prices.get(coin_id)

    def record_price(self, coin_id: str, price: float) -> None:
        self._prices[coin_id] = price

    def price_history(self) -> Dict[str, PriceObservation]:
        return {
            coin_id: PriceObservation(coin_id=coin_id, last_price=price)
            for coin_id, price in self._prices.items()
        }

    def _commit_or_raise(self, what: str) -> None:
        try:
            self.commit()
        except PersistError as e:
            raise PersistError(f"{what}: {e.reason}") from e
