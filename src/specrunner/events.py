"""In-process event emitter shared by the watcher, sessions and exit logic."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

Listener = Callable[..., None]


@dataclass(slots=True)
class EventEmitter:
    """Named listener lists, invoked synchronously in subscription order."""

    _listeners: dict[str, list[Listener]] = field(default_factory=dict)

    def on(self, event: str, listener: Listener) -> None:
        """Subscribe a listener to an event."""
        self._listeners.setdefault(event, []).append(listener)

    def emit(self, event: str, *args: object) -> int:
        """Invoke every listener of an event and return how many ran."""
        listeners = tuple(self._listeners.get(event, ()))
        for listener in listeners:
            listener(*args)
        return len(listeners)
