"""Minimal reactive value container.

A :class:`Signal` holds one value and notifies subscribers synchronously
whenever a different value is set. Consumers that must not write get a
:class:`ReadonlySignal` view.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

_logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], None]


class ReadonlySignal(Generic[T]):
    """Read/subscribe view over a :class:`Signal`."""

    __slots__ = ("_signal",)

    def __init__(self, signal: Signal[T]) -> None:
        self._signal = signal

    def get(self) -> T:
        return self._signal.get()

    def __call__(self) -> T:
        return self._signal.get()

    def subscribe(self, listener: Listener[T]) -> Callable[[], None]:
        return self._signal.subscribe(listener)

    def __repr__(self) -> str:
        return f"ReadonlySignal({self._signal.get()!r})"


class Signal(Generic[T]):
    """A mutable value with change notification."""

    def __init__(self, value: T) -> None:
        self._value = value
        self._listeners: list[Listener[T]] = []

    def get(self) -> T:
        return self._value

    def __call__(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        """Replace the value and notify subscribers if it changed."""
        current = self._value
        if value is current or value == current:
            return
        self._value = value
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                _logger.exception("Signal listener %r failed", listener)

    def update(self, fn: Callable[[T], T]) -> None:
        """Replace the value with ``fn(current)``."""
        self.set(fn(self._value))

    def subscribe(self, listener: Listener[T]) -> Callable[[], None]:
        """Register *listener*; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def readonly(self) -> ReadonlySignal[T]:
        return ReadonlySignal(self)

    def __repr__(self) -> str:
        return f"Signal({self._value!r})"
