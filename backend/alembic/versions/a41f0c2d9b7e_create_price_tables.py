"""Create raw price and OHLC tables

Revision ID: a41f0c2d9b7e
Revises:
Create Date: 2026-10-18 09:12:40.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a41f0c2d9b7e'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

OHLC_TABLES = ("minute_ohlc_data", "hour_ohlc_data", "daily_ohlc_data")


def upgrade() -> None:
    """Create raw_price_data and one OHLC table per timeframe."""
    # Append-only tick source, written by the ingestion process
    op.create_table(
        "raw_price_data",
        sa.Column("ticker", sa.String(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("price", sa.Numeric(), nullable=False),
        sa.Column("volume", sa.Numeric(), nullable=False),
        if_not_exists=True,
    )
    op.create_index(
        "ix_raw_price_data_ticker_timestamp",
        "raw_price_data",
        ["ticker", "timestamp"],
        if_not_exists=True,
    )

    # (ticker, timestamp) is the upsert conflict target
    for table in OHLC_TABLES:
        op.create_table(
            table,
            sa.Column("ticker", sa.String(), nullable=False),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.Column("open", sa.Numeric(), nullable=False),
            sa.Column("high", sa.Numeric(), nullable=False),
            sa.Column("low", sa.Numeric(), nullable=False),
            sa.Column("close", sa.Numeric(), nullable=False),
            sa.Column("volume", sa.Numeric(), nullable=False),
            sa.PrimaryKeyConstraint("ticker", "timestamp"),
            if_not_exists=True,
        )


def downgrade() -> None:
    """Drop the OHLC tables. raw_price_data is owned by ingestion and kept."""
    for table in OHLC_TABLES:
        op.drop_table(table)
