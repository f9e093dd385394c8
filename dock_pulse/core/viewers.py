"""Full-screen viewers that take over input without going through the registry.

A viewer consumes forwarded events until the user closes it (``q`` or Escape),
then returns. The screen handler that spawned it treats the return as the
completion signal and takes focus back.
"""

from __future__ import annotations

import json
import threading
import time
from collections import deque
from typing import Any, Callable, Iterator, Protocol

from dock_pulse.core.backend import BackendError
from dock_pulse.core.events import ControlKey, EventSource, InputEvent
from dock_pulse.utils.config import LOG_REPAINT_INTERVAL, LOG_STREAM_MAX_LINES, PAGER_PAGE_SIZE
from dock_pulse.utils.logger import get_logger

log = get_logger(__name__)

_CLOSE_CHARS = ("q", "Q")


class LogStream(Protocol):
    """A closable iterator of log lines, as returned by the backend."""

    def __iter__(self) -> Iterator[str]: ...

    def close(self) -> None: ...


class Viewer:
    """Scrollable text viewer driven by forwarded input events."""

    def __init__(self, title: str, page_size: int = PAGER_PAGE_SIZE):
        self.title = title
        self.page_size = page_size
        self._lock = threading.Lock()
        self._offset = 0

    # ── Content ──

    def lines(self) -> list[str]:
        raise NotImplementedError

    @property
    def offset(self) -> int:
        with self._lock:
            return self._offset

    def visible_lines(self) -> list[str]:
        content = self.lines()
        offset = self.offset
        return content[offset:offset + self.page_size]

    def render_text(self) -> str:
        return "\n".join(self.visible_lines())

    # ── Interaction ──

    def start(self) -> None:
        pass

    def run(self, events: EventSource) -> None:
        """Consume events until the viewer is closed."""
        try:
            while True:
                event = events.next_event()
                done = self.feed(event)
                events.event_handled(event)
                if done:
                    return
        finally:
            self.on_close()

    def feed(self, event: InputEvent) -> bool:
        """Apply one event. Returns True when the viewer should close."""
        if event.char in _CLOSE_CHARS or event.key is ControlKey.CANCEL:
            return True
        steps = {
            ControlKey.UP: -1,
            ControlKey.DOWN: 1,
            ControlKey.PAGE_UP: -self.page_size,
            ControlKey.PAGE_DOWN: self.page_size,
        }
        if event.key in steps:
            self.scroll(steps[event.key])
        return False

    def scroll(self, delta: int) -> None:
        last = max(len(self.lines()) - self.page_size, 0)
        with self._lock:
            self._offset = max(0, min(last, self._offset + delta))

    def on_close(self) -> None:
        pass


class Pager(Viewer):
    """Pages through a static document (inspect output, image history)."""

    def __init__(self, title: str, document: Any, page_size: int = PAGER_PAGE_SIZE):
        super().__init__(title, page_size)
        if isinstance(document, str):
            text = document
        else:
            text = json.dumps(document, indent=2, sort_keys=True, default=str)
        self._lines = text.splitlines()

    def lines(self) -> list[str]:
        return self._lines


class LogStreamViewer(Viewer):
    """Follows a log stream; lines arrive from a background reader thread."""

    def __init__(
        self,
        title: str,
        stream: LogStream,
        page_size: int = PAGER_PAGE_SIZE,
        max_lines: int = LOG_STREAM_MAX_LINES,
        on_update: Callable[[], None] | None = None,
        update_interval: float = LOG_REPAINT_INTERVAL,
    ):
        super().__init__(title, page_size)
        self._stream = stream
        self._on_update = on_update
        self._update_interval = update_interval
        self._last_update: float | None = None
        self._buffer: deque[str] = deque(maxlen=max_lines)
        self._buffer_lock = threading.Lock()
        self._follow = True
        self._reader = threading.Thread(
            target=self._read, daemon=True, name=f"logs-{title}"
        )

    def start(self) -> None:
        self._reader.start()

    def lines(self) -> list[str]:
        with self._buffer_lock:
            return list(self._buffer)

    def visible_lines(self) -> list[str]:
        if self._follow:
            return self.lines()[-self.page_size:]
        return super().visible_lines()

    def feed(self, event: InputEvent) -> bool:
        if event.key in (ControlKey.UP, ControlKey.PAGE_UP) and self._follow:
            self._follow = False
            self.scroll(len(self.lines()))
        elif event.key is ControlKey.CONFIRM:
            self._follow = True
            return False
        return super().feed(event)

    def _read(self) -> None:
        try:
            for line in self._stream:
                with self._buffer_lock:
                    self._buffer.append(line.rstrip("\n"))
                self._updated()
        except (BackendError, OSError, ValueError) as e:
            log.debug("Log stream %s ended: %s", self.title, e)
        self._updated(force=True)

    def _updated(self, force: bool = False) -> None:
        if self._on_update is None:
            return
        now = time.monotonic()
        if force or self._last_update is None or now - self._last_update >= self._update_interval:
            self._last_update = now
            self._on_update()

    def on_close(self) -> None:
        self._stream.close()
