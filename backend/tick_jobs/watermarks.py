"""
Watermark resolution.
Finds, for every ticker in the raw data, the latest bar already aggregated.
"""

import logging
from datetime import datetime
from typing import List, NamedTuple, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from shared.exceptions import WatermarkResolutionError
from shared.models import RawPriceData, ohlc_table
from tick_jobs.timeframes import Timeframe, resolve

logger = logging.getLogger(__name__)


class TickerWatermark(NamedTuple):
    ticker: str
    watermark: Optional[datetime]  # None if the ticker has no bars yet


def watermark_query(table_name: str):
    """
    Build the batched watermark query for one destination table.

    with tickers as (select distinct ticker from raw_price_data)
    select tickers.ticker, max(<table>.timestamp) from tickers
    left join <table> on <table>.ticker = tickers.ticker
    group by tickers.ticker
    """
    bars = ohlc_table(table_name)
    raw = RawPriceData.__table__
    tickers = select(raw.c.ticker).distinct().cte("tickers")

    return (
        select(tickers.c.ticker, func.max(bars.c.timestamp).label("latest"))
        .select_from(tickers.outerjoin(bars, bars.c.ticker == tickers.c.ticker))
        .group_by(tickers.c.ticker)
        .order_by(tickers.c.ticker)
    )


async def resolve_watermarks(
    conn: AsyncConnection, timeframe: Timeframe
) -> List[TickerWatermark]:
    """
    Resolve the watermark of every known ticker in one query.

    Args:
        conn: Open connection
        timeframe: Timeframe whose destination table is inspected

    Returns:
        One entry per distinct ticker in raw_price_data

    Raises:
        WatermarkResolutionError: If the query fails
    """
    spec = resolve(timeframe)

    try:
        result = await conn.execute(watermark_query(spec.table_name))
        rows = result.all()
    except SQLAlchemyError as e:
        raise WatermarkResolutionError(
            f"Failed to resolve watermarks from {spec.table_name}: {e}",
            table_name=spec.table_name,
        ) from e

    watermarks = [TickerWatermark(row.ticker, row.latest) for row in rows]

    fresh = sum(1 for w in watermarks if w.watermark is None)
    logger.info(
        f"Resolved watermarks for {len(watermarks)} tickers in {spec.table_name} "
        f"({fresh} without bars)"
    )
    return watermarks
