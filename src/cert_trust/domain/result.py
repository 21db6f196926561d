"""
Result railway — explicit, composable error handling for trust evaluation.

A Result[T] is either Success(value: T) or Failure(error: FailureDescription).
Chain building, decoding and issuance return Result, never throw. Errors
propagate through the failure track via .flat_map() short-circuiting:

    build(leaf, store) ──Success(chain)──→ validate(chain) ──→ Success(report)
          │
          └──Failure(INCOMPLETE_CHAIN)──────────────────────→ Failure(...)

Validity outcomes (ErrorExpired, ErrorRevoked, ...) are NOT failures on this
railway: they are ordinary success values. Only structural problems (a chain
that cannot be built, bytes that cannot be decoded, options that cannot be
issued) travel on the failure track.
"""

from __future__ import annotations

import traceback
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique
from typing import Any, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")
R = TypeVar("R")


@unique
class ErrorCode(Enum):
    """
    Structured error codes for the failure track.

    The first three form the structural build family: the chain cannot be
    constructed at all, so no Validity is ever computed for it.
    """

    # --- Chain construction ---
    INCOMPLETE_CHAIN = "INCOMPLETE_CHAIN"
    """No issuer candidate exists for some certificate in the chain."""

    CYCLIC_CHAIN = "CYCLIC_CHAIN"
    """The chosen issuer already appears earlier in the chain."""

    CHAIN_TOO_LONG = "CHAIN_TOO_LONG"
    """The chain exceeded the configured maximum length."""

    # --- Codec / issuance ---
    PARSE_ERROR = "PARSE_ERROR"
    """Bytes could not be decoded into a record."""

    ENCODE_ERROR = "ENCODE_ERROR"
    """A record could not be encoded."""

    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    """The requested encoding or request format is not available."""

    INVALID_OPTIONS = "INVALID_OPTIONS"
    """CertificateOptions are incomplete or inconsistent for the mode."""

    ISSUANCE_ERROR = "ISSUANCE_ERROR"
    """Assembling or signing a new certificate or CRL failed."""

    IO_ERROR = "IO_ERROR"
    """Reading or writing a file failed."""

    @property
    def is_build_error(self) -> bool:
        return self in _BUILD_ERRORS


_BUILD_ERRORS = frozenset(
    {ErrorCode.INCOMPLETE_CHAIN, ErrorCode.CYCLIC_CHAIN, ErrorCode.CHAIN_TOO_LONG}
)


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """Immutable failure descriptor: error code, message, optional exception, timestamp."""

    code: ErrorCode
    message: str
    exception: BaseException | None = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def full_stack_trace(self) -> str:
        """Message plus the formatted exception chain, if any."""
        if self.exception is None:
            return self.message
        tb = "".join(
            traceback.format_exception(
                type(self.exception), self.exception, self.exception.__traceback__
            )
        )
        return f"{self.message}\n{tb}"


class Result(Generic[T]):
    """
    Railway-Oriented Programming Result monad.

        >>> Result.success(3).map(lambda n: n + 1).value()
        4
        >>> Result.failure(ErrorCode.PARSE_ERROR, "bad DER").map(len).is_failure()
        True
    """

    def is_success(self) -> bool:
        return isinstance(self, Success)

    def is_failure(self) -> bool:
        return isinstance(self, Failure)

    def value(self) -> T:
        """Extract the success value. Raises ValueError on a Failure."""
        match self:
            case Success(v):
                return v
            case Failure(err):
                raise ValueError(f"Cannot get value from a Failure: {err.message}")
        raise TypeError("unreachable")  # pragma: no cover

    def error(self) -> FailureDescription:
        """Extract the failure description. Raises ValueError on a Success."""
        match self:
            case Failure(err):
                return err
            case Success(v):
                raise ValueError(f"Cannot get error from a Success: {v}")
        raise TypeError("unreachable")  # pragma: no cover

    def either(
        self,
        on_success: Callable[[T], R],
        on_failure: Callable[[FailureDescription], R],
    ) -> R:
        """Apply one of two functions depending on the track."""
        match self:
            case Success(v):
                return on_success(v)
            case Failure(err):
                return on_failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    def map(self, mapper: Callable[[T], U]) -> Result[U]:
        """Transform the success value. Short-circuits on failure."""
        match self:
            case Success(v):
                return Success(mapper(v))
            case Failure(err):
                return Failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    def flat_map(self, mapper: Callable[[T], Result[U]]) -> Result[U]:
        """Chain a Result-returning function. Short-circuits on failure."""
        match self:
            case Success(v):
                return mapper(v)
            case Failure(err):
                return Failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    def ensure(
        self,
        predicate: Callable[[T], bool],
        code: ErrorCode,
        message: str,
    ) -> Result[T]:
        """Keep the success value only if it satisfies the predicate."""
        return self.flat_map(
            lambda v: Result.success(v) if predicate(v) else Result.failure(code, message)
        )

    def peek(self, action: Callable[[T], Any]) -> Result[T]:
        """Run a side effect (logging) on the success value."""
        match self:
            case Success(v):
                action(v)
        return self

    def peek_failure(self, action: Callable[[FailureDescription], Any]) -> Result[T]:
        """Run a side effect on the failure description."""
        match self:
            case Failure(err):
                action(err)
        return self

    def get_or_else(self, default: T) -> T:
        match self:
            case Success(v):
                return v
            case _:
                return default

    @staticmethod
    def success(value: T) -> Result[T]:
        return Success(value)

    @staticmethod
    def failure_from(error: FailureDescription) -> Result[T]:
        return Failure(error)

    @staticmethod
    def failure(
        code: ErrorCode,
        message: str,
        exception: BaseException | None = None,
    ) -> Result[T]:
        return Failure(FailureDescription(code=code, message=message, exception=exception))

    @staticmethod
    def from_computation(
        computation: Callable[[], T],
        error_code: ErrorCode,
        error_message: str,
    ) -> Result[T]:
        """
        Wrap a computation that may raise into a Result.

        Used at adapter boundaries only (codec, file I/O, key operations).
        """
        try:
            return Result.success(computation())
        except Exception as e:
            return Result.failure(error_code, f"{error_message}: {e}", e)

    @staticmethod
    def all_of(results: list[Result[T]]) -> Result[list[T]]:
        """Collect Results into a Result of list; the first failure wins."""
        values: list[T] = []
        for r in results:
            match r:
                case Success(v):
                    values.append(v)
                case Failure(err):
                    return Failure(err)
        return Success(values)

    def __bool__(self) -> bool:
        return self.is_success()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Result):
            return NotImplemented
        match (self, other):
            case (Success(a), Success(b)):
                return a == b
            case (Failure(a), Failure(b)):
                return a.code == b.code and a.message == b.message
            case _:
                return False

    __hash__ = None  # type: ignore[assignment]


@dataclass(frozen=True, slots=True, eq=False)
class Success(Result[T]):
    """The success track."""

    _value: T

    def __init__(self, value: T) -> None:
        if value is None:
            raise TypeError("Success value must not be None")
        object.__setattr__(self, "_value", value)

    def __repr__(self) -> str:
        return f"Success({self._value!r})"


Success.__match_args__ = ("_value",)


@dataclass(frozen=True, slots=True, eq=False)
class Failure(Result[T]):
    """The failure track."""

    _error: FailureDescription

    def __init__(self, error: FailureDescription) -> None:
        if error is None:
            raise TypeError("Failure error must not be None")
        object.__setattr__(self, "_error", error)

    def __repr__(self) -> str:
        return f"Failure({self._error.code.value}: {self._error.message!r})"


Failure.__match_args__ = ("_error",)


class ResultAssertions:
    """Expressive test assertions for Result values."""

    @staticmethod
    def assert_success(result: Result[T], message: str = "") -> T:
        """Assert the Result is a Success and return its value."""
        context = f" — {message}" if message else ""
        assert result.is_success(), (
            f"Expected Success but got Failure("
            f"{result.error().code.value}: {result.error().message!r}){context}"
        )
        return result.value()

    @staticmethod
    def assert_failure(
        result: Result[T],
        expected_code: ErrorCode | None = None,
        message: str = "",
    ) -> FailureDescription:
        """Assert the Result is a Failure, optionally with a specific code."""
        context = f" — {message}" if message else ""
        assert result.is_failure(), (
            f"Expected Failure but got Success({result.value()!r}){context}"
        )
        error = result.error()
        if expected_code is not None:
            assert error.code == expected_code, (
                f"Expected error code {expected_code.value} "
                f"but got {error.code.value}: {error.message!r}{context}"
            )
        return error

    @staticmethod
    def assert_failure_message_contains(result: Result[T], substring: str) -> None:
        error = ResultAssertions.assert_failure(result)
        assert substring.lower() in error.message.lower(), (
            f"Expected failure message to contain {substring!r} "
            f"but message was: {error.message!r}"
        )
