"""
Exception types for the tick job runner.

Every exception defined here is fatal for the running job. Failures of a
single ticker's aggregation are not raised; they are logged and reported
in the job summary instead.
"""

from typing import Any, Dict, Optional


class JobError(Exception):
    """Base exception for fatal job errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "JOB_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize exception.

        Args:
            message: Error message
            error_code: Short machine-readable code
            details: Extra context for logs
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(JobError):
    """Environment file missing or invalid."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class DatabaseConnectionError(JobError):
    """Malformed connection URL or unreachable store."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DATABASE_CONNECTION_ERROR", details)


class WatermarkResolutionError(JobError):
    """The batched watermark query failed."""

    def __init__(
        self,
        message: str,
        table_name: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super_details = details or {}
        super_details["table"] = table_name
        super().__init__(message, "WATERMARK_RESOLUTION_ERROR", super_details)
        self.table_name = table_name


class TickerFailuresError(JobError):
    """One or more tickers failed while strict ticker failures are enabled."""

    def __init__(self, failed: Dict[str, str]):
        super().__init__(
            f"Aggregation failed for {len(failed)} ticker(s): {', '.join(sorted(failed))}",
            "TICKER_FAILURES",
            {"failed": dict(failed)},
        )
        self.failed = dict(failed)
