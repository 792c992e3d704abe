"""Result-or-error wrapper returned by every gateway call.

A failed AI call or an unparseable response is an ``Outcome`` with ``ok``
False, never an empty dict that looks like valid data.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: Optional[T] = None
    error: Optional[str] = None
    # Raw model text kept for diagnosis when parsing failed
    raw: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str, raw: Optional[str] = None) -> "Outcome[T]":
        return cls(error=error or "unknown error", raw=raw)

    def unwrap(self) -> T:
        if not self.ok:
            raise ValueError(f"unwrap on failed outcome: {self.error}")
        return self.value  # type: ignore[return-value]

    def unwrap_or(self, fallback: T) -> T:
        return self.value if self.ok else fallback  # type: ignore[return-value]

    def map(self, fn: Callable[[T], U]) -> "Outcome[U]":
        if not self.ok:
            return Outcome(error=self.error, raw=self.raw)
        return Outcome(value=fn(self.value))  # type: ignore[arg-type]
