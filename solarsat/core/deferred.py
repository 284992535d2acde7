"""Lazily evaluated handles for expensive remote results."""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")

_UNSET = object()


class Deferred(Generic[T]):
    """Wrap a zero-argument callable and evaluate it at most once.

    Earth Engine objects are computation graphs; fetching them is what costs
    time and quota. A ``Deferred`` lets a stage hand back such a fetch without
    triggering it, leaving evaluation to whoever reports or exports the value.
    """

    def __init__(self, func: Callable[[], T], description: str = "") -> None:
        self._func = func
        self._value: object = _UNSET
        self.description = description

    @classmethod
    def of(cls, value: T) -> "Deferred[T]":
        """Return an already-resolved handle."""
        handle = cls(lambda: value)
        handle._value = value
        return handle

    @property
    def resolved(self) -> bool:
        return self._value is not _UNSET

    def get(self) -> T:
        if self._value is _UNSET:
            self._value = self._func()
        return self._value  # type: ignore[return-value]

    def map(self, func: Callable[[T], U]) -> Deferred[U]:
        """Chain a transformation without resolving this handle."""
        return Deferred(lambda: func(self.get()), self.description)

    def __repr__(self) -> str:
        state = "resolved" if self.resolved else "pending"
        return f"<Deferred {self.description or 'value'} ({state})>"

