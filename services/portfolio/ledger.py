"""
Simulated crypto ledger: USD balance, holdings and an append-only trade log per user.

Every mutating call for a user runs under that user's lock and follows the
same sequence: validate -> fetch price -> build the new portfolio -> swap it
in -> persist. A price failure aborts before anything changes. A persistence
failure happens after the swap and is *not* rolled back: the trade stands for
the rest of the process lifetime and PersistError carries it to the caller.
"""
from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from schemas.portfolio import (
    Portfolio,
    PortfolioValuation,
    SkippedAsset,
    Transaction,
    TransactionType,
)
from services.cache.crypto_catalog import CryptoCatalog, crypto_catalog
from services.coingecko_service import PriceSource
from services.errors import (
    AlreadyExistsError,
    InsufficientFundsError,
    InsufficientHoldingsError,
    InvalidAmountError,
    NotFoundError,
    PersistError,
    PriceFetchError,
)

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_BALANCE = 10000.0

# Holdings at or above this stay on the books; anything smaller is dust and is dropped.
HOLDING_EPSILON = 1e-6


def _is_positive_amount(x: float) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool) and math.isfinite(x) and x > 0


def _is_dust(amount: float) -> bool:
    return amount < HOLDING_EPSILON


def describe_transaction(tx: Transaction) -> str:
    verb = "bought" if tx.transaction_type == TransactionType.BUY else "sold"
    return f"Successfully {verb} {tx.amount:.6f} {tx.coin_id} for ${tx.total_value:.2f} USD"


class Ledger:
    def __init__(
        self,
        price_source: PriceSource,
        catalog: CryptoCatalog = crypto_catalog,
        *,
        default_balance: float = DEFAULT_INITIAL_BALANCE,
        on_commit: Optional[Callable[[], None]] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._price_source = price_source
        self._catalog = catalog
        self._default_balance = default_balance
        self._on_commit = on_commit
        self._clock = clock
        self._portfolios: Dict[str, Portfolio] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # State in / out (used by the persistence layer)
    # ------------------------------------------------------------------

    def load(self, portfolios: Dict[str, Portfolio]) -> None:
        self._portfolios = {uid: p.model_copy(deep=True) for uid, p in portfolios.items()}

    def snapshot(self) -> Dict[str, Portfolio]:
        return {uid: p.model_copy(deep=True) for uid, p in self._portfolios.items()}

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def initialize(self, user_id: str, initial_balance: Optional[float] = None) -> Portfolio:
        balance = self._default_balance if initial_balance is None else initial_balance
        if not isinstance(balance, (int, float)) or not math.isfinite(balance) or balance < 0:
            raise InvalidAmountError("Initial balance must be a non-negative number")

        async with self._locks.setdefault(user_id, asyncio.Lock()):
            if user_id in self._portfolios:
                raise AlreadyExistsError(f"Portfolio for user {user_id} already exists")

            self._portfolios[user_id] = Portfolio(usd_balance=float(balance))
            logger.info("portfolio_initialized balance=%.2f", balance)
            self._commit()
            return self.get(user_id)

    def get(self, user_id: str) -> Portfolio:
        return self._require(user_id).model_copy(deep=True)

    def transactions(self, user_id: str) -> List[Transaction]:
        return list(self._require(user_id).transactions)

    async def buy(self, user_id: str, coin: str, usd_amount: float) -> Transaction:
        """
        Spend `usd_amount` on `coin` at the current price.

        Besides non-positive amounts, InvalidAmountError is also raised for a
        buy that would leave the holding below HOLDING_EPSILON. Such a buy is
        refused outright instead of being recorded and then pruned as dust, so
        the balance is never debited for a holding that would not be kept.
        """
        if not _is_positive_amount(usd_amount):
            raise InvalidAmountError("Amount must be greater than zero")

        async with self._lock_for(user_id):
            portfolio = self._require(user_id)
            if portfolio.usd_balance < usd_amount:
                raise InsufficientFundsError(
                    f"Insufficient USD balance. You have ${portfolio.usd_balance:.2f}, "
                    f"but need ${usd_amount:.2f}"
                )

            coin_id = self._catalog.normalize(coin)
            price = await self._price_source.get_price(coin_id)

            crypto_amount = usd_amount / price
            new_amount = portfolio.holdings.get(coin_id, 0.0) + crypto_amount
            if _is_dust(new_amount):
                raise InvalidAmountError(
                    f"Purchase too small: {crypto_amount:.10f} {coin_id} would leave a holding below "
                    f"the minimum of {HOLDING_EPSILON:g}; the buy was refused and no funds were spent"
                )

            tx = Transaction(
                transaction_type=TransactionType.BUY,
                coin_id=coin_id,
                amount=crypto_amount,
                price=price,
                total_value=usd_amount,
                timestamp=self._clock(),
            )
            holdings = dict(portfolio.holdings)
            holdings[coin_id] = new_amount
            self._portfolios[user_id] = Portfolio(
                usd_balance=portfolio.usd_balance - usd_amount,
                holdings=holdings,
                transactions=[*portfolio.transactions, tx],
            )

            logger.info("trade_executed side=buy coin=%s amount=%.8f price=%.4f", coin_id, crypto_amount, price)
            self._commit(tx)
            return tx

    async def sell(self, user_id: str, coin: str, crypto_amount: float) -> Transaction:
        if not _is_positive_amount(crypto_amount):
            raise InvalidAmountError("Amount must be greater than zero")

        async with self._lock_for(user_id):
            portfolio = self._require(user_id)
            coin_id = self._catalog.normalize(coin)

            held = portfolio.holdings.get(coin_id, 0.0)
            if held < crypto_amount:
                raise InsufficientHoldingsError(
                    f"Insufficient {coin_id} balance. You have {held:.6f}, "
                    f"but want to sell {crypto_amount:.6f}"
                )

            price = await self._price_source.get_price(coin_id)
            usd_value = crypto_amount * price

            tx = Transaction(
                transaction_type=TransactionType.SELL,
                coin_id=coin_id,
                amount=crypto_amount,
                price=price,
                total_value=usd_value,
                timestamp=self._clock(),
            )
            holdings = dict(portfolio.holdings)
            remaining = held - crypto_amount
            if _is_dust(remaining):
                holdings.pop(coin_id, None)
            else:
                holdings[coin_id] = remaining

            self._portfolios[user_id] = Portfolio(
                usd_balance=portfolio.usd_balance + usd_value,
                holdings=holdings,
                transactions=[*portfolio.transactions, tx],
            )

            logger.info("trade_executed side=sell coin=%s amount=%.8f price=%.4f", coin_id, crypto_amount, price)
            self._commit(tx)
            return tx

    async def total_value(self, user_id: str) -> PortfolioValuation:
        """
        Balance plus every holding at its current price.

        A coin whose price cannot be fetched is left out of the total and
        reported in `skipped_assets`; one bad coin never fails the valuation.
        """
        portfolio = self.get(user_id)

        holdings_usd: Dict[str, float] = {}
        skipped: List[SkippedAsset] = []
        total = portfolio.usd_balance

        for coin_id, amount in portfolio.holdings.items():
            try:
                price = await self._price_source.get_price(coin_id)
            except PriceFetchError as e:
                logger.warning("valuation_price_skipped coin=%s error=%s", coin_id, e.cause)
                skipped.append(SkippedAsset(coin_id=coin_id, reason=e.cause))
                continue
            value = amount * price
            holdings_usd[coin_id] = value
            total += value

        return PortfolioValuation(
            user_id=user_id,
            total_usd=total,
            usd_balance=portfolio.usd_balance,
            holdings_usd=holdings_usd,
            skipped_assets=skipped,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        # only existing portfolios get a lock; unknown ids fail here
        self._require(user_id)
        return self._locks.setdefault(user_id, asyncio.Lock())

    def _require(self, user_id: str) -> Portfolio:
        portfolio = self._portfolios.get(user_id)
        if portfolio is None:
            raise NotFoundError(f"Portfolio not found for user {user_id}")
        return portfolio

    def _commit(self, tx: Optional[Transaction] = None) -> None:
        if self._on_commit is None:
            return
        try:
            self._on_commit()
        except PersistError as e:
            what = "Transaction recorded" if tx is not None else "Portfolio created"
            raise PersistError(f"{what} but failed to save: {e.reason}", transaction=tx) from e
