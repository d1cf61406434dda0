"""
Bar aggregator for converting tick-level price data into OHLCV bars.
Scans one ticker's raw ticks since its watermark day and upserts the bars.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import AsyncIterable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import Table, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine

from shared.models import RawPriceData, ohlc_table
from tick_jobs.timeframes import Timeframe, resolve, start_of_day, truncate

logger = logging.getLogger(__name__)

# Dialects with INSERT ... ON CONFLICT DO UPDATE
_INSERT_CONSTRUCTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

UPDATE_COLUMNS = ("open", "high", "low", "close", "volume")


@dataclass(frozen=True)
class OhlcBar:
    ticker: str
    timestamp: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal

    def as_row(self) -> Dict:
        """
        Convert bar to a row for the OHLC table upsert.

        Returns:
            Dict keyed by column name
        """
        return {
            "ticker": self.ticker,
            "timestamp": self.timestamp,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


@dataclass
class TickerResult:
    """Outcome of one ticker's aggregation."""

    ticker: str
    success: bool
    bars_written: int = 0
    error: Optional[str] = None


class BarBuilder:
    """
    Builds one bar from the ticks of a single bucket.

    Ticks are ranked by (timestamp, price, volume). Open is the price of the
    lowest-ranked tick and close the price of the highest-ranked one, so the
    result does not depend on the order ticks are added in.
    """

    def __init__(self, ticker: str, bucket: datetime):
        self.ticker = ticker
        self.bucket = bucket
        self.first: Optional[Tuple[datetime, Decimal, Decimal]] = None
        self.last: Optional[Tuple[datetime, Decimal, Decimal]] = None
        self.high: Optional[Decimal] = None
        self.low: Optional[Decimal] = None
        self.volume = Decimal(0)

    def add_tick(self, timestamp: datetime, price: Decimal, volume: Decimal):
        """
        Add tick to bar.

        Args:
            timestamp: Tick time, inside this bar's bucket
            price: Tick price
            volume: Tick volume
        """
        key = (timestamp, price, volume)

        if self.first is None:
            self.first = self.last = key
            self.high = self.low = price
        else:
            self.first = min(self.first, key)
            self.last = max(self.last, key)
            self.high = max(self.high, price)
            self.low = min(self.low, price)

        self.volume += volume

    def is_empty(self) -> bool:
        """Check if bar has any ticks."""
        return self.first is None

    def build(self) -> OhlcBar:
        """
        Build the final bar.

        Returns:
            OhlcBar for this bucket

        Raises:
            ValueError: If no tick was added
        """
        if self.is_empty():
            raise ValueError("Cannot build empty bar")

        return OhlcBar(
            ticker=self.ticker,
            timestamp=self.bucket,
            open=self.first[1],
            high=self.high,
            low=self.low,
            close=self.last[1],
            volume=self.volume,
        )


class BarSet:
    """
    Buckets one ticker's ticks and keeps one BarBuilder per bucket.

    Only the builders are kept, so memory grows with the number of buckets,
    not with the number of ticks fed in.
    """

    def __init__(self, ticker: str, unit: str):
        self.ticker = ticker
        self.unit = unit
        self.builders: Dict[datetime, BarBuilder] = {}

    def add_tick(self, timestamp: datetime, price, volume):
        """
        Route tick to the builder of its bucket.

        Args:
            timestamp: Tick time
            price: Tick price
            volume: Tick volume

        Raises:
            ValueError: If price or volume is missing
        """
        if price is None or volume is None:
            raise ValueError(f"Tick at {timestamp} has no price or volume")

        bucket = truncate(timestamp, self.unit)
        builder = self.builders.get(bucket)
        if builder is None:
            builder = self.builders[bucket] = BarBuilder(self.ticker, bucket)
        builder.add_tick(timestamp, Decimal(price), Decimal(volume))

    def build(self) -> List[OhlcBar]:
        """Bars ordered by bucket start."""
        return [self.builders[bucket].build() for bucket in sorted(self.builders)]


def compute_bars(
    ticker: str,
    ticks: Iterable[Tuple[datetime, Decimal, Decimal]],
    unit: str,
) -> List[OhlcBar]:
    """
    Bucket ticks by truncated timestamp and build one bar per bucket.

    Args:
        ticker: Ticker the ticks belong to
        ticks: (timestamp, price, volume) tuples in any order
        unit: Truncation unit ("minute", "hour", "day")

    Returns:
        Bars ordered by bucket start
    """
    bars = BarSet(ticker, unit)
    for timestamp, price, volume in ticks:
        bars.add_tick(timestamp, price, volume)
    return bars.build()


async def stream_bars(
    ticker: str,
    ticks: AsyncIterable[Tuple[datetime, Decimal, Decimal]],
    unit: str,
) -> List[OhlcBar]:
    """
    Same as compute_bars, consuming ticks as they arrive from the store.

    Args:
        ticker: Ticker the ticks belong to
        ticks: Async iterable of (timestamp, price, volume) rows
        unit: Truncation unit ("minute", "hour", "day")

    Returns:
        Bars ordered by bucket start
    """
    bars = BarSet(ticker, unit)
    async for timestamp, price, volume in ticks:
        bars.add_tick(timestamp, price, volume)
    return bars.build()


def build_upsert(dialect_name: str, table: Table):
    """
    Build INSERT ... ON CONFLICT (ticker, timestamp) DO UPDATE for table.

    Raises:
        NotImplementedError: If the dialect has no ON CONFLICT support here
    """
    try:
        insert = _INSERT_CONSTRUCTS[dialect_name]
    except KeyError:
        raise NotImplementedError(f"Upsert is not supported on {dialect_name}")

    stmt = insert(table)
    return stmt.on_conflict_do_update(
        index_elements=[table.c.ticker, table.c.timestamp],
        set_={name: stmt.excluded[name] for name in UPDATE_COLUMNS},
    )


def scan_query(ticker: str, since: Optional[datetime]):
    """Select one ticker's raw ticks, optionally from a given instant on."""
    raw = RawPriceData.__table__
    query = select(raw.c.timestamp, raw.c.price, raw.c.volume).where(raw.c.ticker == ticker)
    if since is not None:
        query = query.where(raw.c.timestamp >= since)
    return query


async def aggregate_and_upsert(
    engine: AsyncEngine,
    ticker: str,
    timeframe: Timeframe,
    watermark: Optional[datetime] = None,
) -> TickerResult:
    """
    Aggregate one ticker's new raw ticks and upsert the bars.

    When a watermark is given, every tick on or after the watermark's
    calendar date is rescanned, so buckets still open at watermark time pick
    up late ticks. Scan and write share one transaction on a connection of
    their own; a failure rolls back this ticker only.

    Args:
        engine: Pooled engine to check a connection out of
        ticker: Ticker to aggregate
        timeframe: Bar timeframe
        watermark: Latest bar already stored for the ticker, if any

    Returns:
        TickerResult; errors are logged and reported, never raised
    """
    spec = resolve(timeframe)
    since = start_of_day(watermark) if watermark is not None else None

    try:
        async with engine.begin() as conn:
            # server-side cursor; rows are folded into bars as they arrive
            result = await conn.stream(scan_query(ticker, since))
            bars = await stream_bars(ticker, result, spec.unit)

            if bars:
                upsert = build_upsert(conn.dialect.name, ohlc_table(spec.table_name))
                await conn.execute(upsert, [bar.as_row() for bar in bars])

    except Exception as e:
        logger.error(f"Aggregation failed for {ticker} ({spec.table_name}): {e}")
        return TickerResult(ticker=ticker, success=False, error=str(e) or type(e).__name__)

    logger.debug(
        f"Upserted {len(bars)} bars for {ticker} into {spec.table_name} "
        f"(since {since.date() if since else 'start'})"
    )
    return TickerResult(ticker=ticker, success=True, bars_written=len(bars))
