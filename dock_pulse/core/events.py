"""Input events and the forwarding channel that hands them to modal tasks.

Architecture:
    - InputEvent: immutable tagged union, a named ControlKey or one printable char
    - KeyMap: translates terminal key names into InputEvents (config table driven)
    - ForwardingChannel: one per screen handler; opens a fresh single-producer /
      single-consumer session each time a modal or viewer takes over input
    - EventSource: what a modal/viewer reads from; calls back after each event
"""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from dock_pulse.utils.config import KEY_BINDINGS
from dock_pulse.utils.logger import get_logger

log = get_logger(__name__)


# ─── Data Models ────────────────────────────────────────────────────


class ControlKey(Enum):
    """Named control signals understood by handlers, modals and viewers."""
    SORT = "sort"
    REFRESH = "refresh"
    REMOVE = "remove"
    FORCE_REMOVE = "force_remove"
    REMOVE_IMAGE = "remove_image"
    REMOVE_DANGLING = "remove_dangling"
    SCALE = "scale"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    BACKSPACE = "backspace"
    UP = "up"
    DOWN = "down"
    PAGE_UP = "page_up"
    PAGE_DOWN = "page_down"
    QUIT = "quit"


@dataclass(frozen=True)
class InputEvent:
    """A single keyboard event: exactly one of ``key`` or ``char`` is set."""
    key: ControlKey | None = None
    char: str | None = None

    def __post_init__(self) -> None:
        if (self.key is None) == (self.char is None):
            raise ValueError("InputEvent needs exactly one of key or char")
        if self.char is not None and len(self.char) != 1:
            raise ValueError(f"InputEvent char must be a single character: {self.char!r}")

    @classmethod
    def of_key(cls, key: ControlKey) -> InputEvent:
        return cls(key=key)

    @classmethod
    def of_char(cls, char: str) -> InputEvent:
        return cls(char=char)

    def __str__(self) -> str:
        return self.key.value if self.key is not None else repr(self.char)


class KeyMap:
    """Translate terminal key names (as Textual reports them) to InputEvents."""

    def __init__(self, bindings: dict[str, str] | None = None):
        table = KEY_BINDINGS if bindings is None else bindings
        self._bindings = {name: ControlKey(value) for name, value in table.items()}

    def translate(self, key: str, character: str | None = None) -> InputEvent | None:
        """Return the event for a key press, or None if it means nothing to us."""
        control = self._bindings.get(key)
        if control is not None:
            return InputEvent.of_key(control)
        if character is not None and len(character) == 1 and character.isprintable():
            return InputEvent.of_char(character)
        return None


# ─── Forwarding ─────────────────────────────────────────────────────


@dataclass
class ForwardingSession:
    """One hand-off of the input stream to a single consumer."""
    name: str
    events: queue.Queue = field(default_factory=queue.Queue)
    ready: threading.Event = field(default_factory=threading.Event)
    closed: bool = False


class ForwardingChannel:
    """Single-producer / single-consumer hand-off of input events.

    The owning screen handler is the only producer and the modal or viewer task
    it spawned is the only consumer. The session queue exists before the handler
    starts forwarding, so events pushed before the consumer runs are buffered,
    never dropped. Callers serialize push/close with their own lock.
    """

    def __init__(self, owner: str):
        self._owner = owner
        self._session: ForwardingSession | None = None

    @property
    def is_open(self) -> bool:
        return self._session is not None

    def open(self, name: str) -> ForwardingSession:
        if self._session is not None:
            raise RuntimeError(
                f"{self._owner}: forwarding session '{self._session.name}' already open"
            )
        self._session = ForwardingSession(name=name)
        log.debug("%s: opened forwarding session for %s", self._owner, name)
        return self._session

    def push(self, event: InputEvent) -> bool:
        """Forward ``event`` to the open session. Returns False if none is open."""
        if self._session is None:
            return False
        self._session.events.put(event)
        log.debug("%s: forwarded %s to %s", self._owner, event, self._session.name)
        return True

    def close(self) -> list[InputEvent]:
        """Close the session and return any events its consumer never read."""
        session, self._session = self._session, None
        if session is None:
            return []
        session.closed = True
        unread: list[InputEvent] = []
        while True:
            try:
                unread.append(session.events.get_nowait())
            except queue.Empty:
                break
        log.debug(
            "%s: closed forwarding session for %s (%d unread)",
            self._owner, session.name, len(unread),
        )
        return unread


class EventSource:
    """The input stream as seen by a modal or viewer.

    ``next_event`` blocks until the owning handler forwards an event.
    ``event_handled`` must be called once the consumer has acted on it,
    which triggers the configured callback (normally a repaint request).
    """

    def __init__(
        self,
        session: ForwardingSession,
        on_event_handled: Callable[[InputEvent], None] | None = None,
    ):
        self._session = session
        self._on_event_handled = on_event_handled

    def next_event(self, timeout: float | None = None) -> InputEvent | None:
        """Return the next forwarded event, or None after ``timeout`` seconds."""
        self._session.ready.set()
        try:
            return self._session.events.get(timeout=timeout)
        except queue.Empty:
            return None

    def event_handled(self, event: InputEvent) -> None:
        if self._on_event_handled:
            self._on_event_handled(event)
