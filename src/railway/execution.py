"""
Execution context for a whole pipeline run.

Domain steps return Result[T] and do not log timing or catch exceptions
themselves. The context wraps one run: it logs start and end with the
elapsed time, and a raised exception becomes a TECHNICAL_ERROR failure, so
a bug in one reconciliation cannot kill the worker thread running it.

    ctx = LoggingExecutionContext(operation="SecretSync")
    result = ctx.execute(lambda: sync(ref, token))
"""

from __future__ import annotations

import time
from typing import Callable, TypeVar

import structlog

from railway.failure import ErrorCode
from railway.result import Result

T = TypeVar("T")
log = structlog.get_logger()


class LoggingExecutionContext:
    """Run a Result-returning computation with timing logs and exception capture."""

    def __init__(self, operation: str = "unknown") -> None:
        self._operation = operation

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        log.debug("execution.started", operation=self._operation)
        started = time.monotonic()
        try:
            result = computation()
        except Exception as e:
            log.error(
                "execution.crashed",
                operation=self._operation,
                elapsed_seconds=round(time.monotonic() - started, 3),
                error=str(e),
                exc_info=True,
            )
            return Result.failure(ErrorCode.TECHNICAL_ERROR, f"Execution failed: {e}", e)

        log.debug(
            "execution.completed",
            operation=self._operation,
            elapsed_seconds=round(time.monotonic() - started, 3),
            track="success" if result.is_success() else "failure",
        )
        return result
