"""Browser session registry driven by channel events."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Final, Protocol

from specrunner.events import EventEmitter

logger = logging.getLogger(__name__)

STATE_CONNECTED: Final = "connected"
STATE_REGISTERED: Final = "registered"
STATE_DISCONNECTED: Final = "disconnected"

FINISH_EVENT: Final = "finish"
MESSAGE_REGISTER_BROWSER: Final = "registerBrowser"
MESSAGE_REGISTER_CLIENT: Final = "registerClient"
MESSAGE_RUN_COMPLETE: Final = "runComplete"
MESSAGE_REPORT: Final = "report"


class Channel(Protocol):
    """Outbound half of one browser connection."""

    def send(self, event: str, payload: Mapping[str, object]) -> None: ...


@dataclass(slots=True, frozen=True)
class Connected:
    """A browser opened a channel."""

    connection_id: str
    channel: Channel


@dataclass(slots=True, frozen=True)
class Registered:
    """The browser announced itself with ``registerBrowser``."""

    connection_id: str
    payload: Mapping[str, object]


@dataclass(slots=True, frozen=True)
class ClientRegistered:
    """Reserved for a future server mode; accepted and otherwise ignored."""

    connection_id: str
    payload: Mapping[str, object]


@dataclass(slots=True, frozen=True)
class RunCompleted:
    """The browser reported the result of one run."""

    connection_id: str
    payload: Mapping[str, object]


@dataclass(slots=True, frozen=True)
class Reported:
    """A progress line from the browser, such as one benchmark cycle."""

    connection_id: str
    payload: Mapping[str, object]


@dataclass(slots=True, frozen=True)
class Disconnected:
    """The channel closed, whether or not the browser said goodbye."""

    connection_id: str


SessionEvent = Connected | Registered | ClientRegistered | RunCompleted | Reported | Disconnected


@dataclass(slots=True)
class BrowserSession:
    """Server-side record of one connected browser tab."""

    session_id: str
    connection_id: str
    channel: Channel
    emitter: EventEmitter
    metadata: dict[str, object] = field(default_factory=dict)
    state: str = STATE_CONNECTED

    def send(self, event: str, payload: Mapping[str, object]) -> None:
        self.channel.send(event, payload)


class SessionProtocolError(Exception):
    """Raised for events that contradict a session's state."""


class BrowserSessionRegistry:
    """Track browser sessions through ``connected -> registered -> disconnected``."""

    def __init__(self, emitter: EventEmitter) -> None:
        self._emitter = emitter
        self._sessions: dict[str, BrowserSession] = {}
        self._counter = 0

    @property
    def emitter(self) -> EventEmitter:
        return self._emitter

    def _next_session_id(self) -> str:
        self._counter += 1
        return f"browser-{self._counter:06d}"

    def handle(self, event: SessionEvent) -> BrowserSession | None:
        """Apply one inbound channel event."""
        if isinstance(event, Connected):
            return self._connect(event)
        if isinstance(event, Registered):
            return self._register(event)
        if isinstance(event, ClientRegistered):
            return None
        if isinstance(event, RunCompleted):
            session = self._require(event.connection_id)
            self._emitter.emit("runComplete", session, dict(event.payload))
            return session
        if isinstance(event, Reported):
            session = self._require(event.connection_id)
            line = event.payload.get("cycle", dict(event.payload))
            logger.info("%s: %s", session.session_id, line)
            return session
        if isinstance(event, Disconnected):
            session = self._sessions.pop(event.connection_id, None)
            if session is not None:
                session.state = STATE_DISCONNECTED
                logger.info("Browser %s disconnected.", session.session_id)
                self._emitter.emit("disconnect", session)
            return session
        raise TypeError(f"Unsupported session event: {event!r}")

    def handle_message(self, connection_id: str, message: object) -> dict[str, object]:
        """Translate one wire message into an event and acknowledge it.

        Unknown or malformed messages are ignored, not fatal.
        """
        if not isinstance(message, dict):
            return {"ok": False, "ignored": True, "reason": "Message must be an object."}
        message_type = message.get("type")
        payload = message.get("payload", {})
        if not isinstance(payload, dict):
            payload = {}
        if message_type == MESSAGE_REGISTER_BROWSER:
            session = self.handle(Registered(connection_id, payload))
            return {"ok": True, "session": session.session_id if session else None}
        if message_type == MESSAGE_REGISTER_CLIENT:
            self.handle(ClientRegistered(connection_id, payload))
            return {"ok": True, "ignored": False}
        if message_type == MESSAGE_RUN_COMPLETE:
            self.handle(RunCompleted(connection_id, payload))
            return {"ok": True}
        if message_type == MESSAGE_REPORT:
            self.handle(Reported(connection_id, payload))
            return {"ok": True}
        logger.debug("Ignoring unknown channel message type %r.", message_type)
        return {"ok": False, "ignored": True, "reason": f"Unknown message type: {message_type}"}

    def _connect(self, event: Connected) -> BrowserSession:
        if event.connection_id in self._sessions:
            raise SessionProtocolError(f"Connection already known: {event.connection_id}")
        session = BrowserSession(
            session_id=self._next_session_id(),
            connection_id=event.connection_id,
            channel=event.channel,
            emitter=self._emitter,
        )
        self._sessions[event.connection_id] = session
        return session

    def _register(self, event: Registered) -> BrowserSession:
        session = self._require(event.connection_id)
        session.metadata = dict(event.payload)
        session.state = STATE_REGISTERED
        logger.info("Browser %s registered: %s", session.session_id, session.metadata)
        self._emitter.emit("register", session)
        return session

    def _require(self, connection_id: str) -> BrowserSession:
        session = self._sessions.get(connection_id)
        if session is None:
            raise SessionProtocolError(f"Unknown connection: {connection_id}")
        return session

    def get(self, connection_id: str) -> BrowserSession | None:
        return self._sessions.get(connection_id)

    def sessions(self, state: str | None = None) -> tuple[BrowserSession, ...]:
        """Enumerate live sessions in connection order, optionally by state."""
        return tuple(
            session
            for session in self._sessions.values()
            if state is None or session.state == state
        )

    def dispatch(self, command: str, payload: Mapping[str, object] | None = None) -> int:
        """Send a command to every registered session; return how many got it."""
        targets = self.sessions(STATE_REGISTERED)
        for session in targets:
            session.send(command, dict(payload or {}))
        return len(targets)

    def emit_finish(self, code: int = 0) -> int:
        """Pass a run-level ``finish`` through to the exit logic."""
        return self._emitter.emit(FINISH_EVENT, code)


class RunCoordinator:
    """Raise ``finish`` once every registered browser reported its run."""

    def __init__(self, registry: BrowserSessionRegistry) -> None:
        self._registry = registry
        self._results: dict[str, int] = {}
        registry.emitter.on("runComplete", self._on_complete)
        registry.emitter.on("disconnect", self._on_disconnect)

    def reload(self, payload: Mapping[str, object] | None = None) -> int:
        """Forget partial results and ask every registered browser to reload."""
        self._results = {}
        return self._registry.dispatch("reload", payload)

    def _on_complete(self, session: BrowserSession, payload: dict[str, object]) -> None:
        failed = payload.get("failed", 0)
        self._results[session.session_id] = failed if isinstance(failed, int) else 1
        self._check()

    def _on_disconnect(self, session: BrowserSession) -> None:
        self._results.pop(session.session_id, None)
        self._check()

    def _check(self) -> None:
        registered = self._registry.sessions(STATE_REGISTERED)
        if not registered:
            return
        if any(session.session_id not in self._results for session in registered):
            return
        code = 1 if any(self._results[s.session_id] for s in registered) else 0
        self._results = {}
        self._registry.emit_finish(code)
