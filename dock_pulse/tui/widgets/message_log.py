"""Message log — the single sink for user-visible status and error strings."""

from __future__ import annotations

import threading
import time
from collections import deque

from rich.console import Group
from rich.text import Text
from textual.widgets import Static

from dock_pulse.utils.config import MESSAGE_DISPLAY, MESSAGE_HISTORY


class MessageLog:
    """Thread-safe buffer of timestamped user messages.

    ``appmessage`` is what screen handlers and their modal tasks call; the
    dispatch loop and worker threads may call it concurrently.
    """

    def __init__(self, max_messages: int = MESSAGE_HISTORY):
        self._messages: deque[tuple[float, str]] = deque(maxlen=max_messages)
        self._lock = threading.Lock()

    def appmessage(self, text: str) -> None:
        with self._lock:
            self._messages.append((time.time(), text))

    def get_messages(self, count: int = MESSAGE_DISPLAY) -> list[tuple[float, str]]:
        """Return the most recent messages, oldest first."""
        with self._lock:
            return list(self._messages)[-count:]

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._messages)


class MessageLogWidget(Static):
    """Shows the last few messages under the entity list, newest last."""

    DEFAULT_CSS = """
    MessageLogWidget {
        height: auto;
        max-height: 7;
        padding: 0 1;
        border-top: solid #30363d;
    }
    """

    def __init__(self, messages: MessageLog, **kwargs):
        super().__init__(**kwargs)
        self._messages = messages

    def on_mount(self) -> None:
        self.refresh_messages()

    def refresh_messages(self) -> None:
        rows = []
        for ts, text in self._messages.get_messages():
            t = time.strftime("%H:%M:%S", time.localtime(ts))
            rows.append(Text.assemble((f"{t} ", "dim"), (text, "bold yellow")))
        if not rows:
            rows.append(Text("No messages", style="dim italic"))
        self.update(Group(*rows))
