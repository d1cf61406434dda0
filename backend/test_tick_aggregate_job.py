"""End-to-end tests of the tick aggregation job against SQLite."""

from datetime import datetime
from decimal import Decimal

import pytest

from conftest import fetch_bars, insert_ticks, reject_bars
from shared.config import Settings
from shared.exceptions import DatabaseConnectionError, TickerFailuresError
from tick_jobs.coordinator import run_for_all
from tick_jobs.jobs import TickAggregate
from tick_jobs.runner import run_job
from tick_jobs.timeframes import Timeframe
from tick_jobs.watermarks import TickerWatermark

D = Decimal


def day(d, h=9, m=0, s=0):
    return datetime(2024, 3, d, h, m, s)


@pytest.mark.asyncio
async def test_example_scenario(engine, settings):
    await insert_ticks(
        engine,
        [
            ("ABC", day(4, 9, 0), 10, 100),
            ("ABC", day(4, 9, 0, 30), 12, 50),
            ("ABC", day(4, 9, 1), 11, 200),
        ],
    )

    summary = await TickAggregate(Timeframe.MINUTE).run(engine, settings)

    assert summary.succeeded == ["ABC"]
    assert summary.bars_written == 2
    assert await fetch_bars(engine, "minute_ohlc_data") == [
        ("ABC", day(4, 9, 0), D(10), D(12), D(10), D(12), D(150)),
        ("ABC", day(4, 9, 1), D(11), D(11), D(11), D(11), D(200)),
    ]


@pytest.mark.asyncio
async def test_rerun_is_idempotent(engine, settings):
    await insert_ticks(
        engine,
        [(t, day(d, h), 10 + h, 5) for t in ("ABC", "XYZ") for d in (4, 5) for h in (9, 10, 11)],
    )
    job = TickAggregate(Timeframe.HOUR)

    await job.run(engine, settings)
    first = await fetch_bars(engine, "hour_ohlc_data")
    await job.run(engine, settings)
    second = await fetch_bars(engine, "hour_ohlc_data")

    assert len(first) == 12
    assert second == first


@pytest.mark.asyncio
async def test_rerun_only_touches_watermark_day_onwards(engine, settings):
    await insert_ticks(
        engine,
        [
            ("ABC", day(4, 9, 0), 10, 1),
            ("ABC", day(4, 9, 0, 30), 12, 1),
            ("ABC", day(5, 10, 0), 20, 1),
        ],
    )
    job = TickAggregate(Timeframe.MINUTE)
    await job.run(engine, settings)
    before = await fetch_bars(engine, "minute_ohlc_data")

    await insert_ticks(
        engine,
        [
            ("ABC", day(4, 9, 0, 45), 99, 1),  # late tick before the watermark day
            ("ABC", day(5, 10, 0, 30), 21, 1),
            ("ABC", day(6, 8, 0), 30, 1),
        ],
    )
    await job.run(engine, settings)
    after = await fetch_bars(engine, "minute_ohlc_data")

    assert after[0] == before[0]
    assert after[0][3] == D(12)
    assert after[1:] == [
        ("ABC", day(5, 10, 0), D(20), D(21), D(20), D(21), D(2)),
        ("ABC", day(6, 8, 0), D(30), D(30), D(30), D(30), D(1)),
    ]


@pytest.mark.asyncio
async def test_new_ticker_gets_full_pass(engine, settings):
    await insert_ticks(engine, [("ABC", day(4, 9), 10, 1)])
    job = TickAggregate(Timeframe.DAILY)
    await job.run(engine, settings)

    await insert_ticks(engine, [("NEW", day(1, 9), 5, 1), ("NEW", day(4, 9), 6, 1)])
    summary = await job.run(engine, settings)

    assert sorted(summary.succeeded) == ["ABC", "NEW"]
    assert await fetch_bars(engine, "daily_ohlc_data", ticker="NEW") == [
        ("NEW", datetime(2024, 3, 1), D(5), D(5), D(5), D(5), D(1)),
        ("NEW", datetime(2024, 3, 4), D(6), D(6), D(6), D(6), D(1)),
    ]


@pytest.mark.asyncio
async def test_failing_ticker_does_not_stop_others(engine, settings):
    tickers = ["AAA", "BAD", "CCC", "DDD", "EEE"]
    await insert_ticks(engine, [(t, day(4, 9, m), 10 + m, 1) for t in tickers for m in range(3)])
    # BAD's first bar is accepted, its second aborts the upsert halfway
    await reject_bars(engine, "minute_ohlc_data", "BAD", min_open=11)

    summary = await TickAggregate(Timeframe.MINUTE).run(engine, settings)

    assert list(summary.failed) == ["BAD"]
    assert "rejected bar" in summary.failed["BAD"]
    assert sorted(summary.succeeded) == ["AAA", "CCC", "DDD", "EEE"]
    assert summary.bars_written == 12
    assert await fetch_bars(engine, "minute_ohlc_data", ticker="BAD") == []
    for ticker in ("AAA", "CCC", "DDD", "EEE"):
        assert len(await fetch_bars(engine, "minute_ohlc_data", ticker=ticker)) == 3


@pytest.mark.asyncio
async def test_failed_upsert_keeps_previous_bars(engine, settings):
    await insert_ticks(engine, [("BAD", day(4, 9, m), 10 + m, 1) for m in range(2)])
    job = TickAggregate(Timeframe.MINUTE)
    await job.run(engine, settings)
    before = await fetch_bars(engine, "minute_ohlc_data")

    await insert_ticks(engine, [("BAD", day(4, 9, 0, 30), 5, 1), ("BAD", day(4, 9, 2), 20, 1)])
    await reject_bars(engine, "minute_ohlc_data", "BAD", min_open=20)
    summary = await job.run(engine, settings)

    assert list(summary.failed) == ["BAD"]
    # the 09:00 bar would have changed; the rollback leaves it as it was
    assert await fetch_bars(engine, "minute_ohlc_data") == before


@pytest.mark.asyncio
async def test_strict_mode_raises_after_all_tickers_ran(engine, database_url):
    await insert_ticks(engine, [("AAA", day(4), 1, 1), ("BAD", day(4), 1, 1)])
    await reject_bars(engine, "minute_ohlc_data", "BAD", min_open=0)
    strict = Settings(database_url=database_url, strict_ticker_failures=True)

    with pytest.raises(TickerFailuresError) as excinfo:
        await TickAggregate(Timeframe.MINUTE).run(engine, strict)

    assert list(excinfo.value.failed) == ["BAD"]
    assert len(await fetch_bars(engine, "minute_ohlc_data", ticker="AAA")) == 1


@pytest.mark.asyncio
async def test_coordinator_handles_no_tickers(engine):
    summary = await run_for_all(engine, [], Timeframe.HOUR, concurrency=2)

    assert summary.total == 0
    assert summary.all_succeeded


@pytest.mark.asyncio
async def test_coordinator_with_single_slot(engine):
    await insert_ticks(engine, [(t, day(4), 1, 1) for t in ("A", "B", "C")])
    entries = [TickerWatermark(t, None) for t in ("A", "B", "C")]

    summary = await run_for_all(engine, entries, Timeframe.HOUR, concurrency=1)

    assert sorted(summary.succeeded) == ["A", "B", "C"]
    assert summary.bars_written == 3


@pytest.mark.asyncio
async def test_run_job_end_to_end(engine, settings, caplog):
    await insert_ticks(engine, [("ABC", day(4, 9, 0), 10, 100)])
    caplog.set_level("INFO")

    summary = await run_job(TickAggregate(Timeframe.HOUR), settings)

    assert summary.succeeded == ["ABC"]
    assert "Starting job TickAggregate { timeframe: hour }" in caplog.text
    assert "Job TickAggregate { timeframe: hour } done in" in caplog.text


@pytest.mark.asyncio
async def test_run_job_unreachable_database(tmp_path):
    settings = Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'x.db'}")

    with pytest.raises(DatabaseConnectionError):
        await run_job(TickAggregate(Timeframe.HOUR), settings)
