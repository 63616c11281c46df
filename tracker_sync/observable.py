"""Minimal subscribable values and event streams"""

import logging
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventStream(Generic[T]):
    """Fan-out of events to subscribed callbacks"""

    def __init__(self):
        self._subscribers: List[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register `callback`; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def _unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def emit(self, value: T) -> None:
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception as e:
                # One broken observer must not stop the others or the writer.
                logger.error(f"Subscriber {callback!r} failed: {e}")


class ObservableValue(EventStream[T]):
    """Current value plus change notifications; new subscribers get the current value"""

    def __init__(self, initial: T):
        super().__init__()
        self._value = initial

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        unsubscribe = super().subscribe(callback)
        callback(self._value)
        return unsubscribe

    def set(self, value: T) -> None:
        self._value = value
        self.emit(value)
