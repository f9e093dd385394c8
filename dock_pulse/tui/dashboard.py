"""Dashboard screen — main TUI layout.

Layout:
    ┌────────────── HEADER ──────────────┐
    │ Entity list  /  full-screen viewer │
    │ Prompt line (active modal)         │
    │ Messages                           │
    └────────────── FOOTER ──────────────┘
"""

from __future__ import annotations

from textual.app import ComposeResult
from textual.screen import Screen
from textual.widgets import Static

from dock_pulse.core.dispatch import Dispatcher
from dock_pulse.core.modals import ModalWidget
from dock_pulse.tui.widgets.entity_table import EntityTableWidget
from dock_pulse.tui.widgets.message_log import MessageLog, MessageLogWidget

_FOOTERS = {
    "services": "[F1] Sort │ [F5] Refresh │ [^R] Remove │ [^S] Scale │ [%] Filter │ "
                "[Enter] Tasks │ [i] Inspect │ [l] Logs │ [2] Images │ [q] Quit",
    "images": "[F1] Sort │ [F5] Refresh │ [^E] Remove │ [^F] Force remove │ [^D] Dangling │ "
              "[Enter] Inspect │ [i] History │ [r] Run │ [1] Services │ [q] Quit",
    "service_tasks": "[F1] Sort │ [F5] Refresh │ [Esc] Back │ [q] Quit",
}


class DashboardScreen(Screen):
    """Single screen hosting the entity list, modal prompt and messages."""

    DEFAULT_CSS = """
    #header {
        height: 1;
        background: #0d1117;
        color: #58a6ff;
        text-style: bold;
        padding: 0 1;
    }

    #prompt {
        height: auto;
        padding: 0 1;
        color: #3fb950;
        text-style: bold;
    }

    #footer {
        height: 1;
        color: #8b949e;
        padding: 0 1;
    }
    """

    def __init__(self, dispatcher: Dispatcher, messages: MessageLog, **kwargs):
        super().__init__(**kwargs)
        self._dispatcher = dispatcher
        self._messages = messages

    def compose(self) -> ComposeResult:
        yield Static("🐳 DOCK-PULSE", id="header")
        yield EntityTableWidget(self._dispatcher, id="entities")
        yield Static("", id="prompt")
        yield MessageLogWidget(self._messages, id="messages")
        yield Static("", id="footer")

    def repaint(self) -> None:
        """Redraw every panel from the current dispatcher/registry state."""
        self.query_one(EntityTableWidget).refresh_view()
        self.query_one(MessageLogWidget).refresh_messages()

        modals = [
            w for w in self._dispatcher.context.registry.active_widgets()
            if isinstance(w, ModalWidget)
        ]
        prompt = self.query_one("#prompt", Static)
        prompt.update("\n".join(m.render_text() for m in modals))
        prompt.display = bool(modals)

        view = self._dispatcher.view
        self.query_one("#header", Static).update(f"🐳 DOCK-PULSE  ·  {view.value.replace('_', ' ')}")
        self.query_one("#footer", Static).update(_FOOTERS.get(view.value, ""))
