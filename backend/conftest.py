"""Pytest fixtures: a throwaway SQLite price database per test."""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Tuple

import pytest
import pytest_asyncio
from sqlalchemy import insert, select

from shared.config import Settings
from shared.database import Base, create_engine
from shared.models import RawPriceData, ohlc_table

Tick = Tuple[str, datetime, object, object]


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'prices.db'}"


@pytest.fixture
def settings(database_url) -> Settings:
    return Settings(database_url=database_url, aggregation_concurrency=4)


@pytest_asyncio.fixture
async def engine(settings):
    engine = create_engine(settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


async def insert_ticks(engine, ticks: Iterable[Tick]) -> None:
    rows = [
        {"ticker": ticker, "timestamp": ts, "price": Decimal(str(price)), "volume": Decimal(str(volume))}
        for ticker, ts, price, volume in ticks
    ]
    async with engine.begin() as conn:
        await conn.execute(insert(RawPriceData.__table__), rows)


async def fetch_bars(engine, table_name: str, ticker: str = None) -> List[tuple]:
    table = ohlc_table(table_name)
    query = select(
        table.c.ticker, table.c.timestamp, table.c.open, table.c.high,
        table.c.low, table.c.close, table.c.volume,
    ).order_by(table.c.ticker, table.c.timestamp)
    if ticker is not None:
        query = query.where(table.c.ticker == ticker)

    async with engine.connect() as conn:
        result = await conn.execute(query)
        return [tuple(row) for row in result.all()]


async def reject_bars(engine, table_name: str, ticker: str, min_open) -> None:
    """Make the store abort any bar for ticker whose open is at least min_open."""
    async with engine.begin() as conn:
        await conn.exec_driver_sql(
            f"CREATE TRIGGER reject_{ticker.lower()}_bars BEFORE INSERT ON {table_name} "
            f"WHEN NEW.ticker = '{ticker}' AND NEW.open >= {min_open} "
            "BEGIN SELECT RAISE(ABORT, 'rejected bar'); END"
        )
