"""
Snapshot persistence for ledger and alert state.

The whole state is loaded once at startup and written back as one snapshot
after every committed change. There are no partial updates: `save` either
replaces everything or raises PersistError and leaves the stored snapshot as
it was.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Protocol

from pydantic import BaseModel, Field
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from models.portfolio import PortfolioAccount, PortfolioHolding, PortfolioTransaction
from models.price_alert import PriceAlert, PriceObservationRecord
from schemas.alerts import Alert, PriceObservation
from schemas.portfolio import Portfolio, Transaction, TransactionType
from services.errors import PersistError

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo; every stored timestamp is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class StateSnapshot(BaseModel):
    portfolios: Dict[str, Portfolio] = Field(default_factory=dict)
    alerts: List[Alert] = Field(default_factory=list)
    prices: Dict[str, PriceObservation] = Field(default_factory=dict)


class StateStore(Protocol):
    def load(self) -> StateSnapshot: ...

    def save(self, snapshot: StateSnapshot) -> None: ...


class InMemoryStateStore:
    """Keeps the last saved snapshot in process memory (dev and tests)."""

    def __init__(self, initial: StateSnapshot | None = None):
        self._snapshot = (initial or StateSnapshot()).model_copy(deep=True)
        self.save_count = 0

    def load(self) -> StateSnapshot:
        return self._snapshot.model_copy(deep=True)

    def save(self, snapshot: StateSnapshot) -> None:
        self._snapshot = snapshot.model_copy(deep=True)
        self.save_count += 1


class SqlStateStore:
    """Snapshot store on the SQLAlchemy tables in `models/`."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    # ── read ────────────────────────────────────────────────────────

    def load(self) -> StateSnapshot:
        with self._session_factory() as db:
            accounts = db.execute(
                select(PortfolioAccount).options(
                    selectinload(PortfolioAccount.holdings),
                    selectinload(PortfolioAccount.transactions),
                )
            ).scalars().all()

            portfolios: Dict[str, Portfolio] = {}
            for acc in accounts:
                portfolios[acc.user_id] = Portfolio(
                    usd_balance=acc.usd_balance,
                    holdings={h.coin_id: h.amount for h in acc.holdings},
                    transactions=[
                        Transaction(
                            transaction_type=TransactionType(t.transaction_type),
                            coin_id=t.coin_id,
                            amount=t.amount,
                            price=t.price,
                            total_value=t.total_value,
                            timestamp=_as_utc(t.timestamp),
                        )
                        for t in acc.transactions
                    ],
                )

            alerts = [
                Alert(user=a.user, coin=a.coin, target_price=a.target_price)
                for a in db.execute(select(PriceAlert).order_by(PriceAlert.id)).scalars().all()
            ]
            prices = {
                p.coin_id: PriceObservation(coin_id=p.coin_id, last_price=p.last_price)
                for p in db.execute(select(PriceObservationRecord)).scalars().all()
            }

        logger.info(
            "state_loaded portfolios=%d alerts=%d prices=%d",
            len(portfolios), len(alerts), len(prices),
        )
        return StateSnapshot(portfolios=portfolios, alerts=alerts, prices=prices)

    # ── write ───────────────────────────────────────────────────────

    def save(self, snapshot: StateSnapshot) -> None:
        db = self._session_factory()
        try:
            # children first; SQLite does not enforce ON DELETE CASCADE by default
            for model in (PortfolioTransaction, PortfolioHolding, PortfolioAccount, PriceAlert, PriceObservationRecord):
                db.execute(delete(model))

            for user_id, portfolio in snapshot.portfolios.items():
                db.add(PortfolioAccount(user_id=user_id, usd_balance=portfolio.usd_balance))
                for coin_id, amount in portfolio.holdings.items():
                    db.add(PortfolioHolding(user_id=user_id, coin_id=coin_id, amount=amount))
                for seq, tx in enumerate(portfolio.transactions):
                    db.add(
                        PortfolioTransaction(
                            user_id=user_id,
                            seq=seq,
                            transaction_type=tx.transaction_type.value,
                            coin_id=tx.coin_id,
                            amount=tx.amount,
                            price=tx.price,
                            total_value=tx.total_value,
                            timestamp=tx.timestamp,
                        )
                    )

            for alert in snapshot.alerts:
                db.add(PriceAlert(user=alert.user, coin=alert.coin, target_price=alert.target_price))

            for obs in snapshot.prices.values():
                db.add(PriceObservationRecord(coin_id=obs.coin_id, last_price=obs.last_price))

            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("state_save_failed")
            raise PersistError(f"Failed to save state: {e}") from e
        finally:
            db.close()
