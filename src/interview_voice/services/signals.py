"""Observable state shared between pipeline components."""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[[bool], None]
StatusListener = Callable[[dict[str, Any]], None]


class SpeakingSignal:
    """The "user is currently speaking" flag.

    TranscriptionSession is the only writer. Readers subscribe and are called
    synchronously, in subscription order, on every transition.
    """

    def __init__(self) -> None:
        self._value = False
        self._listeners: list[Listener] = []

    @property
    def value(self) -> bool:
        return self._value

    def __bool__(self) -> bool:
        return self._value

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def set(self, value: bool) -> None:
        if value == self._value:
            return
        self._value = value
        logger.debug(f"isSpeaking set to {value}")
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as e:
                logger.error(f"Speaking listener {listener!r} failed: {e}", exc_info=True)


class StatusBroadcaster:
    """Fan-out of UI-facing status messages shaped ``{"type": ..., **fields}``."""

    def __init__(self) -> None:
        self._listeners: list[StatusListener] = []

    def subscribe(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def broadcast(self, message_type: str, **fields: Any) -> None:
        message = {"type": message_type, **fields}
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception as e:
                logger.error(f"Error delivering {message_type} status: {e}")


__all__ = ["SpeakingSignal", "StatusBroadcaster"]
