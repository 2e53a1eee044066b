"""create trading tables

Revision ID: 3a1f0c2d9b7e
Revises:
Create Date: 2026-10-19

Portfolios, holdings, the transaction log, price alerts and the last
observed price per coin.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "3a1f0c2d9b7e"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "portfolios",
        sa.Column("user_id", sa.String(length=128), primary_key=True),
        sa.Column("usd_balance", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "portfolio_holdings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(length=128),
            sa.ForeignKey("portfolios.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("coin_id", sa.String(length=64), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.UniqueConstraint("user_id", "coin_id", name="uq_portfolio_holdings_user_coin"),
    )
    op.create_index("ix_portfolio_holdings_user_id", "portfolio_holdings", ["user_id"], unique=False)

    op.create_table(
        "portfolio_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(length=128),
            sa.ForeignKey("portfolios.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(length=8), nullable=False),
        sa.Column("coin_id", sa.String(length=64), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("total_value", sa.Float(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "seq", name="uq_portfolio_transactions_user_seq"),
    )
    op.create_index("ix_portfolio_transactions_user_id", "portfolio_transactions", ["user_id"], unique=False)

    op.create_table(
        "price_alerts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user", sa.String(length=128), nullable=False),
        sa.Column("coin", sa.String(length=64), nullable=False),
        sa.Column("target_price", sa.Float(), nullable=False),
        sa.UniqueConstraint("user", "coin", name="uq_price_alerts_user_coin"),
    )
    op.create_index("ix_price_alerts_user", "price_alerts", ["user"], unique=False)

    op.create_table(
        "price_observations",
        sa.Column("coin_id", sa.String(length=64), primary_key=True),
        sa.Column("last_price", sa.Float(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("price_observations")
    op.drop_index("ix_price_alerts_user", table_name="price_alerts")
    op.drop_table("price_alerts")
    op.drop_index("ix_portfolio_transactions_user_id", table_name="portfolio_transactions")
    op.drop_table("portfolio_transactions")
    op.drop_index("ix_portfolio_holdings_user_id", table_name="portfolio_holdings")
    op.drop_table("portfolio_holdings")
    op.drop_table("portfolios")
