# services/errors.py
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from schemas.portfolio import Transaction


class TradingError(Exception):
    """Base class for every domain error raised by the trading services."""


class NotFoundError(TradingError):
    pass


class AlreadyExistsError(TradingError):
    pass


class InvalidAmountError(TradingError):
    pass


class InsufficientFundsError(TradingError):
    pass


class InsufficientHoldingsError(TradingError):
    pass


class PriceFetchError(TradingError):
    """Price lookup failed (network, HTTP status or payload shape)."""

    def __init__(self, coin_id: str, cause: str):
        super().__init__(f"Failed to get price for {coin_id}: {cause}")
        self.coin_id = coin_id
        self.cause = cause


class PersistError(TradingError):
    """
    Writing the state snapshot failed.

    When raised after a ledger mutation, `transaction` is the trade that was
    already applied in memory. It is not rolled back.
    """

    def __init__(self, reason: str, transaction: Optional["Transaction"] = None):
        super().__init__(reason)
        self.reason = reason
        self.transaction = transaction
