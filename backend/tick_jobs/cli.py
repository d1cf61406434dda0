"""
Command line interface for the tick job runner.

Usage:
    tick-jobs --env .envs/marketeer.env tick-aggregate hour
"""

import asyncio
import logging
from pathlib import Path

import typer

from shared.config import load_settings
from shared.exceptions import JobError
from tick_jobs.jobs import Job, TickAggregate
from tick_jobs.runner import run_job
from tick_jobs.timeframes import Timeframe

logger = logging.getLogger(__name__)

app = typer.Typer(add_completion=False, help="Run a single batch job against the price database.")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    env: Path = typer.Option(
        ...,
        "--env",
        metavar="FILE",
        help="Path to the env file holding DATABASE_URL and other settings.",
    ),
) -> None:
    ctx.ensure_object(dict)
    ctx.obj["env"] = env


def execute(ctx: typer.Context, job: Job) -> None:
    """Load settings, run job, and map fatal errors to exit code 1."""
    try:
        settings = load_settings(ctx.obj["env"])
    except JobError as e:
        configure_logging("INFO")
        logger.error(f"Fatal error: {e.message}")
        raise typer.Exit(code=1)

    configure_logging(settings.log_level)

    try:
        asyncio.run(run_job(job, settings))
    except JobError as e:
        logger.error(f"Job {job} failed [{e.error_code}]: {e.message}")
        raise typer.Exit(code=1)
    except Exception as e:
        logger.exception(f"Fatal error in job {job}: {e}")
        raise typer.Exit(code=1)


@app.command(TickAggregate.name)
def tick_aggregate(
    ctx: typer.Context,
    timeframe: Timeframe = typer.Argument(..., help="Bar timeframe to aggregate into."),
) -> None:
    """Aggregate raw ticks into OHLCV bars at the chosen timeframe."""
    execute(ctx, TickAggregate(timeframe))


def main():
    """Main entry point for the tick job runner."""
    app()


if __name__ == "__main__":
    main()
