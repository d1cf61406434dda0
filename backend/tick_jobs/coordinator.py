"""
Fan-out coordinator.
Runs one bar aggregation per ticker concurrently and collects the outcomes.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from sqlalchemy.ext.asyncio import AsyncEngine

from tick_jobs.bar_aggregator import TickerResult, aggregate_and_upsert
from tick_jobs.timeframes import Timeframe
from tick_jobs.watermarks import TickerWatermark

logger = logging.getLogger(__name__)


@dataclass
class AggregationSummary:
    """Outcome of a fan-out over all tickers."""

    timeframe: Timeframe
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    bars_written: int = 0

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    def record(self, result: TickerResult):
        if result.success:
            self.succeeded.append(result.ticker)
            self.bars_written += result.bars_written
        else:
            self.failed[result.ticker] = result.error or "unknown error"


async def run_for_all(
    engine: AsyncEngine,
    watermarks: Sequence[TickerWatermark],
    timeframe: Timeframe,
    concurrency: int = 10,
) -> AggregationSummary:
    """
    Aggregate every ticker concurrently and wait for all of them.

    Each ticker runs as its own task with its own pooled connection. At most
    `concurrency` tasks hold a connection at a time; the rest wait their
    turn. A failing ticker is logged and recorded without affecting the
    others.

    Args:
        engine: Pooled engine shared by the tasks
        watermarks: Tickers to aggregate with their watermarks
        timeframe: Bar timeframe
        concurrency: Maximum tickers aggregated at once

    Returns:
        AggregationSummary over all tickers
    """
    semaphore = asyncio.Semaphore(max(concurrency, 1))

    async def run_one(entry: TickerWatermark) -> TickerResult:
        async with semaphore:
            return await aggregate_and_upsert(
                engine, entry.ticker, timeframe, entry.watermark
            )

    logger.info(
        f"Aggregating {len(watermarks)} tickers at {timeframe.value} "
        f"(concurrency {concurrency})"
    )

    tasks = [
        asyncio.create_task(run_one(entry), name=f"aggregate-{entry.ticker}")
        for entry in watermarks
    ]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    summary = AggregationSummary(timeframe=timeframe)
    for entry, result in zip(watermarks, results):
        if isinstance(result, BaseException):
            # aggregate_and_upsert reports its own errors; this only catches bugs around it
            logger.error(f"Error when joining task for {entry.ticker}: {result}")
            result = TickerResult(ticker=entry.ticker, success=False, error=str(result))
        summary.record(result)

    if summary.failed:
        logger.warning(
            f"Aggregated {len(summary.succeeded)}/{summary.total} tickers, "
            f"failed: {', '.join(sorted(summary.failed))}"
        )
    else:
        logger.info(
            f"Aggregated {summary.total} tickers, {summary.bars_written} bars written"
        )

    return summary
