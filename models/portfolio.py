from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class PortfolioAccount(Base):
    __tablename__ = "portfolios"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    usd_balance: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    holdings = relationship(
        "PortfolioHolding",
        back_populates="portfolio",
        cascade="all, delete-orphan",
    )
    transactions = relationship(
        "PortfolioTransaction",
        back_populates="portfolio",
        cascade="all, delete-orphan",
        order_by="PortfolioTransaction.seq",
    )


class PortfolioHolding(Base):
    __tablename__ = "portfolio_holdings"
    __table_args__ = (
        UniqueConstraint("user_id", "coin_id", name="uq_portfolio_holdings_user_coin"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("portfolios.user_id", ondelete="CASCADE"), index=True)
    coin_id: Mapped[str] = mapped_column(String(64))
    amount: Mapped[float] = mapped_column(Float, nullable=False)

    portfolio = relationship("PortfolioAccount", back_populates="holdings")


class PortfolioTransaction(Base):
    __tablename__ = "portfolio_transactions"
    __table_args__ = (
        UniqueConstraint("user_id", "seq", name="uq_portfolio_transactions_user_seq"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("portfolios.user_id", ondelete="CASCADE"), index=True)
    # position in the user's history; execution order
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(8))
    coin_id: Mapped[str] = mapped_column(String(64))
    amount: Mapped[float] = mapped_column(Float)
    price: Mapped[float] = mapped_column(Float)
    total_value: Mapped[float] = mapped_column(Float)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    portfolio = relationship("PortfolioAccount", back_populates="transactions")
