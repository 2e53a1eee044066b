# services/trading_service.py
from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

from config.settings import Settings
from schemas.alerts import Alert, PriceObservation, SweepReport
from schemas.portfolio import Portfolio, PortfolioValuation, Transaction
from services.alerts.alert_evaluator import AlertEvaluator
from services.alerts.alert_registry import AlertRegistry
from services.cache.crypto_catalog import CryptoCatalog, crypto_catalog
from services.coingecko_service import CoinGeckoService, PriceSource
from services.notifications.notification_service import (
    LoggingNotificationSink,
    NotificationSink,
    build_notification_sink,
)
from services.portfolio.ledger import DEFAULT_INITIAL_BALANCE, Ledger
from services.state_store import InMemoryStateStore, SqlStateStore, StateSnapshot, StateStore

logger = logging.getLogger(__name__)


class TradingService:
    """
    Caller-facing operations for portfolios and price alerts.

    One instance owns one ledger, one alert registry and one store; nothing is
    process-global, so tests can build as many isolated instances as they like.
    Every committed change writes the full state snapshot.
    """

    def __init__(
        self,
        price_source: PriceSource,
        store: StateStore,
        sink: Optional[NotificationSink] = None,
        catalog: CryptoCatalog = crypto_catalog,
        default_balance: float = DEFAULT_INITIAL_BALANCE,
    ):
        self.price_source = price_source
        self.store = store
        self.catalog = catalog
        self.ledger = Ledger(
            price_source,
            catalog,
            default_balance=default_balance,
            on_commit=self._save_state,
        )
        self.registry = AlertRegistry(on_commit=self._save_state)
        self.evaluator = AlertEvaluator(
            self.registry,
            price_source,
            sink or LoggingNotificationSink(),
            catalog,
        )

    # ── state ───────────────────────────────────────────────────────

    def load_state(self) -> None:
        snapshot = self.store.load()
        self.ledger.load(snapshot.portfolios)
        self.registry.load(snapshot.alerts, snapshot.prices)

    def _save_state(self) -> None:
        self.store.save(
            StateSnapshot(
                portfolios=self.ledger.snapshot(),
                alerts=self.registry.list_alerts(),
                prices=self.registry.price_history(),
            )
        )

    # ── portfolio ───────────────────────────────────────────────────

    async def init_portfolio(self, user_id: str, initial_balance: Optional[float] = None) -> Portfolio:
        return await self.ledger.initialize(user_id, initial_balance)

    def get_portfolio(self, user_id: str) -> Portfolio:
        return self.ledger.get(user_id)

    def get_transactions(self, user_id: str) -> List[Transaction]:
        return self.ledger.transactions(user_id)

    async def buy(self, user_id: str, coin: str, amount_usd: float) -> Transaction:
        return await self.ledger.buy(user_id, coin, amount_usd)

    async def sell(self, user_id: str, coin: str, crypto_amount: float) -> Transaction:
        return await self.ledger.sell(user_id, coin, crypto_amount)

    async def get_portfolio_value(self, user_id: str) -> PortfolioValuation:
        return await self.ledger.total_value(user_id)

    # ── market ──────────────────────────────────────────────────────

    def list_supported_assets(self) -> List[str]:
        return self.catalog.supported_ids()

    async def get_crypto_price(self, coin: str) -> float:
        return await self.price_source.get_price(self.catalog.normalize(coin))

    # ── alerts ──────────────────────────────────────────────────────

    async def set_alert(self, user: str, coin: str, target_price: float) -> Alert:
        key = await self.registry.set_alert(user, coin, target_price)
        return self.registry.get_alert(*key)

    def get_alerts(self) -> List[Alert]:
        return self.registry.list_alerts()

    def get_alert(self, user: str, coin: str) -> Alert:
        return self.registry.get_alert(user, coin)

    async def remove_alert(self, user: str, coin: str) -> Alert:
        return await self.registry.remove_alert(user, coin)

    async def run_alert_sweep(self) -> SweepReport:
        return await self.evaluator.run_sweep()

    def get_price_history(self) -> Dict[str, PriceObservation]:
        return self.registry.price_history()


def build_trading_service(settings: Settings) -> TradingService:
    """Wire the production collaborators from settings and load persisted state."""
    if settings.state_backend == "memory":
        store: StateStore = InMemoryStateStore()
    else:
        # imported lazily: database.py requires DATABASE_URL at import time
        from database import Base, SessionLocal, engine
        import models  # noqa: F401  registers the tables on Base.metadata

        Base.metadata.create_all(bind=engine)
        store = SqlStateStore(SessionLocal)

    service = TradingService(
        price_source=CoinGeckoService(
            base_url=settings.coingecko_base_url,
            api_key=settings.coingecko_api_key,
            timeout=settings.coingecko_timeout_sec,
            cache_ttl_sec=settings.price_cache_ttl_sec,
        ),
        store=store,
        sink=build_notification_sink(settings.notify_webhook_url),
        default_balance=settings.default_initial_balance,
    )
    service.load_state()
    return service


async def run_periodic_sweeps(service: TradingService, interval_sec: float) -> None:
    """Background loop for the lifespan task. Runs until cancelled."""
    logger.info("alert_sweeper_started interval_sec=%.1f", interval_sec)
    while True:
        await asyncio.sleep(interval_sec)
        try:
            await service.run_alert_sweep()
        except Exception:
            logger.exception("alert_sweep_crashed")
