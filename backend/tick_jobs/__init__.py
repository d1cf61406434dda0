"""
Batch job runner for tick price data.

Aggregates raw ticks into OHLCV bars per ticker, incrementally and
concurrently, one job per process run.
"""

from .jobs import Job, TickAggregate
from .runner import run_job
from .timeframes import Timeframe

__all__ = ["Job", "TickAggregate", "Timeframe", "run_job"]
