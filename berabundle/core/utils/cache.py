from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class TtlCache(Generic[T]):
    """A single cached value with its own timestamp and TTL.

    Owned by one scanner/discovery instance; the value is replaced wholesale,
    never mutated in place.
    """

    ttl_s: float
    clock: Callable[[], float] = time.monotonic
    _value: T | None = field(default=None, init=False, repr=False)
    _stored_at: float | None = field(default=None, init=False, repr=False)

    @property
    def stored_at(self) -> float | None:
        return self._stored_at

    def is_fresh(self) -> bool:
        if self._stored_at is None:
            return False
        return (self.clock() - self._stored_at) < self.ttl_s

    def get(self) -> T | None:
        if not self.is_fresh():
            return None
        return self._value

    def set(self, value: T) -> None:
        self._value = value
        self._stored_at = self.clock()

    def invalidate(self) -> None:
        self._value = None
        self._stored_at = None
