from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from schemas.portfolio import SkippedAsset

# (user, coin) with the coin stripped and lower-cased
AlertKey = Tuple[str, str]


class Alert(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    user: str
    coin: str
    target_price: float

    @property
    def key(self) -> AlertKey:
        return (self.user, self.coin)


class PriceObservation(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    coin_id: str
    last_price: float


class AlertCreate(BaseModel):
    user: str
    coin: str
    target_price: float

    @field_validator("user", "coin")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        v = (value or "").strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class AlertOut(BaseModel):
    message: str
    alert: Alert


class SweepReport(BaseModel):
    """Outcome of one alert sweep. Partial completion is normal."""

    alerts_checked: int = 0
    notifications_sent: int = 0
    prices_updated: Dict[str, float] = Field(default_factory=dict)
    skipped_assets: List[SkippedAsset] = Field(default_factory=list)
    persisted: bool = False
    persist_error: Optional[str] = None
