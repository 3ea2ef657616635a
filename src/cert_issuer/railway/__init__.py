"""
Railway-Oriented Programming helpers used across cert_issuer.

Explicit, composable error handling — adapters return Result, never raise:

    from cert_issuer.railway import ErrorCode, Result

    def check_extension(filename: str) -> Result[str]:
        if not filename.lower().endswith(".csv"):
            return Result.failure(ErrorCode.FORMAT_ERROR, "File must be a CSV file")
        return Result.success(filename)
"""

from cert_issuer.railway.assertions import ResultAssertions
from cert_issuer.railway.execution import (
    ExecutionContext,
    LoggingExecutionContext,
    NoOpExecutionContext,
)
from cert_issuer.railway.failure import ErrorCode, FailureDescription
from cert_issuer.railway.result import Failure, Result, Success

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "ExecutionContext",
    "NoOpExecutionContext",
    "LoggingExecutionContext",
    "ResultAssertions",
]
