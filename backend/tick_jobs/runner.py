"""
Job entry point.
Connects to the store, runs one job to completion and reports its duration.
"""

import logging
import time
from typing import Any

from shared.config import Settings
from shared.database import create_engine, verify_connection
from tick_jobs.jobs import Job

logger = logging.getLogger(__name__)


async def run_job(job: Job, settings: Settings) -> Any:
    """
    Run a job against the configured database.

    Args:
        job: Job to run
        settings: Loaded settings

    Returns:
        Whatever the job returns

    Raises:
        JobError: On any fatal error (connection, watermark resolution, ...)
    """
    engine = create_engine(settings)

    try:
        await verify_connection(engine)

        logger.info(f"Starting job {job}")
        before = time.perf_counter()
        result = await job.run(engine, settings)
        logger.info(f"Job {job} done in {time.perf_counter() - before:.3f}s")

        return result

    finally:
        await engine.dispose()
