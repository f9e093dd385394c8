"""Dock-Pulse TUI Application — the main Textual App entry point.

Textual only provides the terminal: every key press is translated into an
InputEvent and posted to the Dispatcher, whose loop (and the modal/viewer
tasks it spawns) decide what happens. They ask for repaints through
``request_refresh``, which is safe to call from any thread.
"""

from __future__ import annotations

import threading

from textual import events
from textual.app import App

from dock_pulse.core.backend import DockerCliBackend
from dock_pulse.core.dispatch import Dispatcher, build_dashboard
from dock_pulse.core.events import KeyMap
from dock_pulse.core.registry import ViewMode
from dock_pulse.core.widgets import EntityKind
from dock_pulse.tui.dashboard import DashboardScreen
from dock_pulse.tui.widgets.message_log import MessageLog
from dock_pulse.utils.config import DOCKER_BINARY, REFRESH_INTERVAL
from dock_pulse.utils.logger import get_logger, mute_console

log = get_logger(__name__)


class DockPulseApp(App):
    """Dock-Pulse — keyboard-driven Docker dashboard."""

    TITLE = "🐳 Dock-Pulse"
    SUB_TITLE = "Docker services & images"
    ENABLE_COMMAND_PALETTE = False

    def __init__(
        self,
        view: ViewMode = ViewMode.SERVICES,
        docker_binary: str = DOCKER_BINARY,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.messages = MessageLog()
        self.key_map = KeyMap()
        self._ui_thread: int | None = None
        self._screen: DashboardScreen | None = None
        self.dispatcher: Dispatcher = build_dashboard(
            services=DockerCliBackend(EntityKind.SERVICE, binary=docker_binary),
            images=DockerCliBackend(EntityKind.IMAGE, binary=docker_binary),
            appmessage=self.messages.appmessage,
            refresh=self.request_refresh,
            quit=self.request_quit,
            view=view,
        )

    def on_mount(self) -> None:
        mute_console()
        self._ui_thread = threading.get_ident()
        self._screen = DashboardScreen(self.dispatcher, self.messages)
        self.push_screen(self._screen)
        self.dispatcher.start()
        self.set_interval(REFRESH_INTERVAL, self._repaint)
        self.call_after_refresh(self._repaint)
        log.info("Dashboard loaded on %s view", self.dispatcher.view.value)

    def on_key(self, event: events.Key) -> None:
        input_event = self.key_map.translate(event.key, event.character)
        if input_event is None:
            return
        event.stop()
        event.prevent_default()
        self.dispatcher.post(input_event)

    # ── Called from the dispatch loop and worker threads ──

    def request_refresh(self) -> None:
        if threading.get_ident() == self._ui_thread:
            self._repaint()
            return
        try:
            self.call_from_thread(self._repaint)
        except RuntimeError:
            log.debug("Refresh requested while the app is not running")

    def request_quit(self) -> None:
        if threading.get_ident() == self._ui_thread:
            self.exit()
            return
        try:
            self.call_from_thread(self.exit)
        except RuntimeError:
            log.debug("Quit requested while the app is not running")

    def _repaint(self) -> None:
        if self._screen is not None and self._screen.is_mounted:
            self._screen.repaint()

    def on_unmount(self) -> None:
        log.info("Dock-Pulse shutting down...")
        self.dispatcher.stop()
        mute_console(False)
