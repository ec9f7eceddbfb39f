"""
Result monad for the sync pipeline.

Every fallible step returns Result[T]: either Success carrying the value or
Failure carrying a FailureDescription. Steps are joined with flat_map, and
the first Failure skips every step after it:

    store.get ──flat_map──▶ check_eligibility ──flat_map──▶ locate ──▶ ...
        │                         │                           │
        └──── Failure ────────────┴───────────────────────────┴──▶ Result[T]

Success and Failure each implement the combinators for their own track, so
no method needs to inspect which track it is on.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from railway.failure import ErrorCode, FailureDescription

T = TypeVar("T")
U = TypeVar("U")
R = TypeVar("R")


class Result(ABC, Generic[T]):
    """
    Outcome of a step that may fail.

        >>> Result.success(3).map(lambda n: n + 1).value()
        4
        >>> Result.failure(ErrorCode.NOT_FOUND, "gone").map(lambda n: n + 1).is_failure()
        True
    """

    # ──────────────────────── Track inspection ────────────────────────

    @abstractmethod
    def is_success(self) -> bool: ...

    def is_failure(self) -> bool:
        return not self.is_success()

    @abstractmethod
    def value(self) -> T:
        """The success value; ValueError on the failure track."""

    @abstractmethod
    def error(self) -> FailureDescription:
        """The failure description; ValueError on the success track."""

    @abstractmethod
    def either(
        self,
        on_success: Callable[[T], R],
        on_failure: Callable[[FailureDescription], R],
    ) -> R:
        """Fold both tracks into one value."""

    # ──────────────────────── Combinators ────────────────────────

    @abstractmethod
    def map(self, mapper: Callable[[T], U]) -> Result[U]: ...

    @abstractmethod
    def flat_map(self, mapper: Callable[[T], Result[U]]) -> Result[U]:
        """Continue with a step that can itself fail."""

    @abstractmethod
    def map_failure(
        self, mapper: Callable[[FailureDescription], FailureDescription]
    ) -> Result[T]:
        """Rewrite the failure, e.g. to relabel an adapter error for the caller."""

    def peek(self, action: Callable[[T], Any]) -> Result[T]:
        """Run `action` on the success value (logging, metrics); the Result is unchanged."""
        if self.is_success():
            action(self.value())
        return self

    def __bool__(self) -> bool:
        return self.is_success()

    # ──────────────────────── Constructors ────────────────────────

    @staticmethod
    def success(value: T) -> Result[T]:
        return Success(value)

    @staticmethod
    def failure(
        code: ErrorCode,
        message: str,
        exception: BaseException | None = None,
    ) -> Result[T]:
        return Failure(FailureDescription(code=code, message=message, exception=exception))

    @staticmethod
    def failure_from(error: FailureDescription) -> Result[T]:
        """Put an existing FailureDescription back on the failure track."""
        return Failure(error)

    @staticmethod
    def from_computation(
        computation: Callable[[], T],
        error_code: ErrorCode,
        error_message: str,
    ) -> Result[T]:
        """
        Run `computation`, capturing any exception as a Failure.

        The failure message is "<error_message>: <exception>" and the
        exception is kept for the stack trace. Adapters wrap every SDK call
        this way:

            return Result.from_computation(
                lambda: self._client.describe_certificate(CertificateArn=arn),
                ErrorCode.REMOTE_CATALOG_ERROR,
                f"DescribeCertificate failed for {arn}",
            )
        """
        try:
            return Result.success(computation())
        except Exception as e:
            return Result.failure(error_code, f"{error_message}: {e}", e)

    @staticmethod
    def from_optional(
        value: T | None,
        error_message: str,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ) -> Result[T]:
        """Success(value) unless value is None."""
        if value is None:
            return Result.failure(error_code, error_message)
        return Result.success(value)


@dataclass(frozen=True, slots=True)
class Success(Result[T]):
    """Success track. None is not a valid value."""

    _value: T

    def __post_init__(self) -> None:
        if self._value is None:
            raise TypeError("Success value must not be None")

    def __repr__(self) -> str:
        return f"Success({self._value!r})"

    def is_success(self) -> bool:
        return True

    def value(self) -> T:
        return self._value

    def error(self) -> FailureDescription:
        raise ValueError(f"Success has no error (value: {self._value!r})")

    def either(
        self,
        on_success: Callable[[T], R],
        on_failure: Callable[[FailureDescription], R],
    ) -> R:
        return on_success(self._value)

    def map(self, mapper: Callable[[T], U]) -> Result[U]:
        return Success(mapper(self._value))

    def flat_map(self, mapper: Callable[[T], Result[U]]) -> Result[U]:
        return mapper(self._value)

    def map_failure(
        self, mapper: Callable[[FailureDescription], FailureDescription]
    ) -> Result[T]:
        return self


@dataclass(frozen=True, slots=True, eq=False)
class Failure(Result[T]):
    """Failure track. Two failures are equal when code and message match."""

    _error: FailureDescription

    def __post_init__(self) -> None:
        if self._error is None:
            raise TypeError("Failure requires a FailureDescription")

    def __repr__(self) -> str:
        return f"Failure({self._error.code.value}: {self._error.message!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Failure):
            return NotImplemented
        return (self._error.code, self._error.message) == (
            other._error.code,
            other._error.message,
        )

    def __hash__(self) -> int:
        return hash((Failure, self._error.code, self._error.message))

    def is_success(self) -> bool:
        return False

    def value(self) -> T:
        raise ValueError(f"Failure has no value ({self._error.code.value}: {self._error.message})")

    def error(self) -> FailureDescription:
        return self._error

    def either(
        self,
        on_success: Callable[[T], R],
        on_failure: Callable[[FailureDescription], R],
    ) -> R:
        return on_failure(self._error)

    def map(self, mapper: Callable[[T], U]) -> Result[U]:
        return Failure(self._error)

    def flat_map(self, mapper: Callable[[T], Result[U]]) -> Result[U]:
        return Failure(self._error)

    def map_failure(
        self, mapper: Callable[[FailureDescription], FailureDescription]
    ) -> Result[T]:
        return Failure(mapper(self._error))
