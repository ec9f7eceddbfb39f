"""
Railway primitives shared by every cert-sync layer.

Fallible steps return Result[T] instead of raising, and are chained with
flat_map:

    def require_domain(domain: str) -> Result[str]:
        if not domain:
            return Result.failure(ErrorCode.VALIDATION_ERROR, "Domain must not be empty")
        return Result.success(domain)
"""

from railway.assertions import ResultAssertions
from railway.execution import LoggingExecutionContext
from railway.failure import ErrorCode, FailureDescription
from railway.result import Failure, Result, Success

__all__ = [
    "ErrorCode",
    "Failure",
    "FailureDescription",
    "LoggingExecutionContext",
    "Result",
    "ResultAssertions",
    "Success",
]
