from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class PriceAlert(Base):
    __tablename__ = "price_alerts"
    __table_args__ = (
        UniqueConstraint("user", "coin", name="uq_price_alerts_user_coin"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user: Mapped[str] = mapped_column(String(128), index=True)
    # stripped and lower-cased; aliases are resolved at evaluation time
    coin: Mapped[str] = mapped_column(String(64))
    target_price: Mapped[float] = mapped_column(Float, nullable=False)


class PriceObservationRecord(Base):
    __tablename__ = "price_observations"

    coin_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_price: Mapped[float] = mapped_column(Float, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
