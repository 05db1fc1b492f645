"""Typed outcome of an engine operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from backr.utils.errors import BackrError, DuplicateError

T = TypeVar("T")


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Success value or typed error, never both.

    ``notice`` carries the neutral message shown for idempotent no-ops.
    """

    success: bool
    value: Optional[T] = None
    error: Optional[BackrError] = None

    @classmethod
    def ok(cls, value: T) -> "OperationResult[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: BackrError) -> "OperationResult[T]":
        return cls(success=False, error=error)

    @property
    def is_duplicate(self) -> bool:
        return isinstance(self.error, DuplicateError)

    @property
    def notice(self) -> Optional[str]:
        if self.is_duplicate:
            return self.error.message
        return None

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value
