from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TransactionType(str, Enum):
    BUY = "buy"
    SELL = "sell"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Transaction(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    transaction_type: TransactionType
    coin_id: str
    amount: float          # crypto units
    price: float           # USD per unit at execution
    total_value: float     # USD moved
    timestamp: datetime = Field(default_factory=_utcnow)


class Portfolio(BaseModel):
    usd_balance: float
    holdings: Dict[str, float] = Field(default_factory=dict)
    transactions: List[Transaction] = Field(default_factory=list)


class SkippedAsset(BaseModel):
    coin_id: str
    reason: str


class PortfolioValuation(BaseModel):
    """Best-effort valuation: coins whose price could not be fetched are listed, not counted."""

    user_id: str
    total_usd: float
    usd_balance: float
    holdings_usd: Dict[str, float] = Field(default_factory=dict)
    skipped_assets: List[SkippedAsset] = Field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.skipped_assets)


# ---------- Request bodies ----------

class PortfolioInit(BaseModel):
    initial_balance: Optional[float] = None


class BuyRequest(BaseModel):
    coin: str
    amount_usd: float


class SellRequest(BaseModel):
    coin: str
    crypto_amount: float


class TradeOut(BaseModel):
    message: str
    transaction: Transaction
    usd_balance: float
