"""
All the jobs the runner can execute.

Each job is a subclass of Job that owns its parameters and implements run().
The runner only ever calls Job.run(), so a new job is a new subclass plus a
CLI command; nothing that dispatches jobs changes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar

from sqlalchemy.ext.asyncio import AsyncEngine

from shared.config import Settings
from shared.exceptions import TickerFailuresError
from tick_jobs.coordinator import AggregationSummary, run_for_all
from tick_jobs.timeframes import Timeframe
from tick_jobs.watermarks import resolve_watermarks


class Job(ABC):
    """A single runnable job."""

    name: ClassVar[str]

    @abstractmethod
    async def run(self, engine: AsyncEngine, settings: Settings) -> Any:
        """Run the job to completion against engine."""


@dataclass(frozen=True)
class TickAggregate(Job):
    """
    Aggregate raw ticks into OHLCV bars at one timeframe.

    Usage:
        job = TickAggregate(Timeframe.HOUR)
        await run_job(job, settings)
    """

    timeframe: Timeframe

    name: ClassVar[str] = "tick-aggregate"

    def __str__(self) -> str:
        return f"TickAggregate {{ timeframe: {self.timeframe.value} }}"

    async def run(self, engine: AsyncEngine, settings: Settings) -> AggregationSummary:
        # Watermarks are resolved for every ticker before any aggregation starts
        async with engine.connect() as conn:
            watermarks = await resolve_watermarks(conn, self.timeframe)

        summary = await run_for_all(
            engine,
            watermarks,
            self.timeframe,
            concurrency=settings.effective_concurrency,
        )

        if summary.failed and settings.strict_ticker_failures:
            raise TickerFailuresError(summary.failed)

        return summary
