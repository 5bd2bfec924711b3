"""Initial schema: whale trades and whale alerts.

Revision ID: 001_whale_tables
Revises:
Create Date: 2026-10-18 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_whale_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "whale_trades",
        sa.Column("trade_id", sa.String(80), nullable=False),
        sa.Column("market_id", sa.String(80), nullable=False),
        sa.Column("market_title", sa.Text(), nullable=False),
        sa.Column("asset_id", sa.String(80), nullable=False),
        sa.Column("wallet_address", sa.String(42), nullable=True),
        sa.Column("side", sa.String(4), nullable=False),
        sa.Column("outcome", sa.String(64), nullable=True),
        sa.Column("source", sa.String(8), nullable=False),
        sa.Column("price", sa.Numeric(20, 10), nullable=False),
        sa.Column("size", sa.Numeric(30, 10), nullable=False),
        sa.Column("notional_usdc", sa.Numeric(30, 10), nullable=False),
        sa.Column("z_score", sa.Float(), nullable=False),
        sa.Column("percentile", sa.Float(), nullable=False),
        sa.Column("suspicion_score", sa.Float(), nullable=False),
        sa.Column("severity", sa.String(8), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("trade_id"),
    )
    op.create_index("idx_whale_trades_ts", "whale_trades", ["ts"])
    op.create_index("idx_whale_trades_market_ts", "whale_trades", ["market_id", "ts"])

    op.create_table(
        "whale_alerts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("trade_id", sa.String(80), nullable=False),
        sa.Column("market_id", sa.String(80), nullable=False),
        sa.Column("severity", sa.String(8), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("trade_id", name="uq_whale_alerts_trade"),
    )
    op.create_index("idx_whale_alerts_created_at", "whale_alerts", ["created_at"])


def downgrade() -> None:
    op.drop_index("idx_whale_alerts_created_at", table_name="whale_alerts")
    op.drop_table("whale_alerts")
    op.drop_index("idx_whale_trades_market_ts", table_name="whale_trades")
    op.drop_index("idx_whale_trades_ts", table_name="whale_trades")
    op.drop_table("whale_trades")
