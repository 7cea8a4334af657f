"""
Event emission to registered listeners.

Listeners may be plain callables or coroutine functions. A failing listener
is logged and does not stop delivery to the others.
"""
import inspect
import logging
from typing import Any, Callable, Generic, TypeVar


logger = logging.getLogger(__name__)

E = TypeVar("E")


class EventEmitter(Generic[E]):
    """Delivers events to listeners in registration order."""

    def __init__(self, name: str):
        self._name = name
        self._listeners: list[Callable[[E], Any]] = []

    def add_listener(self, listener: Callable[[E], Any]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[E], Any]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def emit(self, event: E) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error(
                    "%s listener %r failed on %s: %s",
                    self._name,
                    listener,
                    event,
                    exc,
                    exc_info=True,
                )
