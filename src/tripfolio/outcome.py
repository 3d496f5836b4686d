"""Typed success/failure results returned by repository commands."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a command: either ``ok`` with an optional value, or a failure reason.

    Validation problems are reported through ``reason`` as user-facing text; no state is
    mutated when ``ok`` is false.
    """

    ok: bool
    value: Optional[T] = None
    reason: Optional[str] = None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Outcome[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, reason: str) -> "Outcome[T]":
        return cls(ok=False, reason=reason)

    def __bool__(self) -> bool:
        return self.ok


__all__ = ["Outcome"]
