"""
Alert sweep: compare each coin's fresh price with the last one seen and tell
alert owners what moved.

For every alert two things are decided against the pair (previous, current):

* direction   gained / lost / unchanged, always exactly one message;
* crossing    only on a strict transition across the target, i.e.
              previous < target <= current   (up) or
              previous > target >= current   (down).
              A price parked exactly on the target does not re-fire.

A coin seen for the first time uses its current price as "previous", so the
first observation never produces a crossing.

Alerts are grouped by canonical coin: the price is fetched once per coin and
every alert on that coin is judged against the same pair. A failed fetch skips
that coin for this sweep and leaves its stored price untouched.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Dict, List, Optional, Tuple

from schemas.alerts import Alert, SweepReport
from schemas.portfolio import SkippedAsset
from services.alerts.alert_registry import AlertRegistry
from services.cache.crypto_catalog import CryptoCatalog, crypto_catalog
from services.coingecko_service import PriceSource
from services.errors import PersistError, PriceFetchError
from services.notifications.notification_service import NotificationSink

logger = logging.getLogger(__name__)

COIN_PAGE_URL = "https://www.coingecko.com/en/coins/{coin_id}"


class Direction(str, Enum):
    GAINED = "gained"
    LOST = "lost"
    UNCHANGED = "unchanged"


class Crossing(str, Enum):
    UP = "up"
    DOWN = "down"


def classify_direction(previous: float, current: float) -> Direction:
    if current > previous:
        return Direction.GAINED
    if current < previous:
        return Direction.LOST
    return Direction.UNCHANGED


def detect_crossing(previous: float, current: float, target: float) -> Optional[Crossing]:
    if previous < target <= current:
        return Crossing.UP
    if previous > target >= current:
        return Crossing.DOWN
    return None


def direction_message(alert: Alert, coin_id: str, previous: float, current: float) -> str:
    url = COIN_PAGE_URL.format(coin_id=coin_id)
    direction = classify_direction(previous, current)
    if direction == Direction.GAINED:
        return (
            f"🚀 Your coin **{alert.coin}** has gained value! Current price: **${current:.4f}** "
            f"(was ${previous:.4f}). Do you want to trade? [Trade Now]({url})"
        )
    if direction == Direction.LOST:
        return (
            f"📉 Your coin **{alert.coin}** has lost value. Current price: **${current:.4f}** "
            f"(was ${previous:.4f}). Consider taking action. [Check Market]({url})"
        )
    return f"ℹ No change in {alert.coin} price. Current price: ${current:.4f}. [View on CoinGecko]({url})"


def crossing_message(alert: Alert, coin_id: str, current: float, crossing: Crossing) -> str:
    url = COIN_PAGE_URL.format(coin_id=coin_id)
    verb = "has reached" if crossing == Crossing.UP else "has dropped to"
    return (
        f"🎯 Target price alert! **{alert.coin}** {verb} your target of ${alert.target_price:.4f}. "
        f"Current price: ${current:.4f}. [View on CoinGecko]({url})"
    )


def alert_messages(alert: Alert, coin_id: str, previous: float, current: float) -> List[str]:
    """Messages for one alert, in delivery order: crossing (if any) first, then direction."""
    messages: List[str] = []
    crossing = detect_crossing(previous, current, alert.target_price)
    if crossing is not None:
        messages.append(crossing_message(alert, coin_id, current, crossing))
    messages.append(direction_message(alert, coin_id, previous, current))
    return messages


class AlertEvaluator:
    def __init__(
        self,
        registry: AlertRegistry,
        price_source: PriceSource,
        sink: NotificationSink,
        catalog: CryptoCatalog = crypto_catalog,
    ):
        self._registry = registry
        self._price_source = price_source
        self._sink = sink
        self._catalog = catalog
        self._sweep_lock = asyncio.Lock()

    async def run_sweep(self) -> SweepReport:
        async with self._sweep_lock:
            return await self._sweep()

    async def _sweep(self) -> SweepReport:
        alerts = self._registry.list_alerts()
        report = SweepReport()
        logger.info("alert_sweep_started alerts=%d", len(alerts))

        for coin_id, coin_alerts in self._group_by_coin(alerts).items():
            try:
                current = await self._price_source.get_price(coin_id)
            except PriceFetchError as e:
                logger.warning("alert_price_skipped coin=%s error=%s", coin_id, e.cause)
                report.skipped_assets.append(SkippedAsset(coin_id=coin_id, reason=e.cause))
                continue

            outbox: List[Tuple[Alert, List[str]]] = []
            async with self._registry.lock:
                previous = self._registry.get_last_price(coin_id)
                if previous is None:
                    previous = current
                for alert in coin_alerts:
                    outbox.append((alert, alert_messages(alert, coin_id, previous, current)))
                self._registry.record_price(coin_id, current)

            report.prices_updated[coin_id] = current
            report.alerts_checked += len(coin_alerts)

            for alert, messages in outbox:
                for message in messages:
                    if await self._dispatch(alert.user, message):
                        report.notifications_sent += 1

        if report.prices_updated:
            try:
                self._registry.commit()
                report.persisted = True
            except PersistError as e:
                logger.error("alert_state_save_failed error=%s", e.reason)
                report.persist_error = e.reason

        logger.info(
            "alert_sweep_finished checked=%d notifications=%d skipped=%d persisted=%s",
            report.alerts_checked,
            report.notifications_sent,
            len(report.skipped_assets),
            report.persisted,
        )
        return report

    def _group_by_coin(self, alerts: List[Alert]) -> Dict[str, List[Alert]]:
        grouped: Dict[str, List[Alert]] = {}
        for alert in alerts:
            grouped.setdefault(self._catalog.normalize(alert.coin), []).append(alert)
        return grouped

    async def _dispatch(self, user_id: str, message: str) -> bool:
        """True when the sink accepted the message."""
        try:
            await self._sink.send(user_id, message)
        except Exception:
            # a broken sink must not stop the sweep
            logger.exception("notification_dispatch_failed")
            return False
        return True
