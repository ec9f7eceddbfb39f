"""
pytest helpers for Result values.

Failing assertions print the error code and message of the unexpected
track, which a bare `assert result.is_success()` would hide.

    arn = ResultAssertions.assert_success(importer.import_certificate(request))
    ResultAssertions.assert_failure(result, ErrorCode.REMOTE_CATALOG_ERROR)
"""

from __future__ import annotations

from typing import TypeVar

from railway.failure import ErrorCode, FailureDescription
from railway.result import Result

T = TypeVar("T")


def _describe(result: Result[T]) -> str:
    if result.is_success():
        return f"Success({result.value()!r})"
    error = result.error()
    return f"Failure({error.code.value}: {error.message!r})"


class ResultAssertions:
    """Assertions that unwrap the expected track and return its payload."""

    @staticmethod
    def assert_success(result: Result[T], message: str = "") -> T:
        assert result.is_success(), f"expected Success, got {_describe(result)} {message}".rstrip()
        return result.value()

    @staticmethod
    def assert_failure(
        result: Result[T],
        expected_code: ErrorCode | None = None,
        message: str = "",
    ) -> FailureDescription:
        """Unwrap a Failure; with `expected_code`, also check its code."""
        assert result.is_failure(), f"expected Failure, got {_describe(result)} {message}".rstrip()
        error = result.error()
        if expected_code is not None:
            assert error.code is expected_code, (
                f"expected {expected_code.value}, got {_describe(result)} {message}".rstrip()
            )
        return error

    @staticmethod
    def assert_failure_message_contains(result: Result[T], substring: str) -> None:
        """Case-insensitive substring check on the failure message."""
        error = ResultAssertions.assert_failure(result)
        assert substring.lower() in error.message.lower(), (
            f"{substring!r} not found in failure message {error.message!r}"
        )
