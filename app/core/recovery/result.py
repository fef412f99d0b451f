"""Explicit success/failure values returned across classifier boundaries."""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from .errors import ErrorCode, ErrorRecord

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or an ErrorRecord, never both."""

    value: Optional[T] = None
    error: Optional[ErrorRecord] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorRecord) -> "Result[T]":
        return cls(error=error)

    @classmethod
    def fail(cls, code: ErrorCode, message: Optional[str] = None, **details) -> "Result[T]":
        return cls(error=ErrorRecord.of(code, message, **details))

    def unwrap(self) -> T:
        if self.error is not None:
            raise ValueError(f"unwrap on failed result: {self.error.code.value}")
        return self.value  # type: ignore[return-value]
