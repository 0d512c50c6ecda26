"""Small reactive primitives: replaying live values, event streams, pulses.

``LiveValue`` replays its current value to each new subscriber and pushes every
change afterwards. A value nobody observes (no subscribers, directly or through
derived values) is not recomputed on change; it is marked stale and reloaded on
the next read. ``EventStream`` is a hot broadcast with no replay. ``Pulse`` is a
single-slot notification: each ``fire()`` is consumed by at most one
``receive()``.
"""

from __future__ import annotations

import queue
import threading
from collections.abc import Callable
from typing import Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")
V = TypeVar("V")

Unsubscribe = Callable[[], None]


class EventStream(Generic[T]):
    """Broadcast values to the subscribers present at emission time."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[Callable[[T], None]] = []

    def __bool__(self) -> bool:
        return bool(self._subscribers)

    def subscribe(self, callback: Callable[[T], None]) -> Unsubscribe:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def snapshot(self) -> list[Callable[[T], None]]:
        with self._lock:
            return list(self._subscribers)

    def emit(self, value: T) -> None:
        for callback in self.snapshot():
            callback(value)


class LiveValue(Generic[T]):
    """Observable value; emits only when the new value differs from the old one.

    Loads run under the value's lock, so concurrent refreshes are applied in
    the order they read. Publishing always sends the latest stored value and
    skips versions that were already superseded.
    """

    def __init__(self, initial: T | None = None, *, loader: Callable[[], T] | None = None) -> None:
        self._lock = threading.RLock()
        self._publish_lock = threading.RLock()
        self._value = initial
        self._loader = loader
        self._loaded = loader is None
        self._version = 0
        self._published = 0
        self._subscribers: EventStream[T] = EventStream()
        self._dependents: list[LiveValue] = []

    @property
    def value(self) -> T:
        with self._lock:
            if not self._loaded:
                self._value = self._loader()
                self._loaded = True
            return self._value

    def is_observed(self) -> bool:
        return bool(self._subscribers) or any(d.is_observed() for d in self._dependents)

    def _store(self, value: T) -> bool:
        # Caller holds self._lock
        if self._loaded and value == self._value:
            return False
        self._value = value
        self._loaded = True
        self._version += 1
        return True

    def _publish(self) -> None:
        with self._publish_lock:
            with self._lock:
                value, version = self._value, self._version
            if version <= self._published:
                return
            self._published = version
            for callback in self._subscribers.snapshot():
                # A subscriber wrote back and a newer value went out already
                if self._published != version:
                    return
                callback(value)
            for dependent in list(self._dependents):
                dependent.refresh()

    def set(self, value: T) -> bool:
        """Store ``value`` and notify subscribers. Returns False if unchanged."""
        with self._lock:
            changed = self._store(value)
        if changed:
            self._publish()
        return changed

    def _invalidate(self) -> None:
        with self._lock:
            self._loaded = False
        for dependent in list(self._dependents):
            dependent.refresh()

    def refresh(self) -> bool:
        """Re-run the loader and publish the result. Returns True if subscribers were notified.

        Unobserved values are only marked stale.
        """
        if self._loader is None:
            return False
        if not self.is_observed():
            self._invalidate()
            return False
        with self._lock:
            changed = self._store(self._loader())
        if changed:
            self._publish()
        return changed

    def subscribe(self, callback: Callable[[T], None]) -> Unsubscribe:
        unsubscribe = self._subscribers.subscribe(callback)
        callback(self.value)
        return unsubscribe

    def map(self, fn: Callable[[T], U]) -> LiveValue[U]:
        derived: LiveValue[U] = LiveValue(loader=lambda: fn(self.value))
        self._dependents.append(derived)
        return derived


def combine_latest(first: LiveValue[T], second: LiveValue[U], fn: Callable[[T, U], V]) -> LiveValue[V]:
    """Derive a value recomputed whenever either source changes."""
    combined: LiveValue[V] = LiveValue(loader=lambda: fn(first.value, second.value))
    first._dependents.append(combined)
    second._dependents.append(combined)
    return combined


class Pulse:
    """Payload-free notification; each fire is received at most once."""

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[None] = queue.SimpleQueue()

    def fire(self) -> None:
        self._queue.put(None)

    def receive(self, timeout: float | None = None) -> bool:
        """Block until a pulse arrives. Returns False on timeout."""
        try:
            self._queue.get(timeout=timeout)
        except queue.Empty:
            return False
        return True

    def poll(self) -> bool:
        """Consume a pending pulse without blocking."""
        try:
            self._queue.get_nowait()
        except queue.Empty:
            return False
        return True
