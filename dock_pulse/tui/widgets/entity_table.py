"""Main panel — the active view's entity list, or the open full-screen viewer."""

from __future__ import annotations

from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from textual.widgets import Static

from dock_pulse.core.dispatch import Dispatcher
from dock_pulse.core.viewers import Viewer
from dock_pulse.core.widgets import EntityListWidget

_TITLES = {
    "services": "🐳 SERVICES",
    "images": "📦 IMAGES",
    "service_tasks": "🧩 SERVICE TASKS",
}


class EntityTableWidget(Static):
    """Renders whatever currently owns the main area of the screen."""

    DEFAULT_CSS = """
    EntityTableWidget {
        height: 1fr;
        padding: 0 1;
        overflow-y: auto;
    }
    """

    def __init__(self, dispatcher: Dispatcher, **kwargs):
        super().__init__(**kwargs)
        self._dispatcher = dispatcher

    def on_mount(self) -> None:
        self.refresh_view()

    def refresh_view(self) -> None:
        context = self._dispatcher.context
        viewer = context.viewer
        if viewer is not None:
            self.update(self._viewer_panel(viewer))
            return

        view = self._dispatcher.view
        widget = context.registry.widget_for_view(view)
        if not widget.mounted:
            # docker calls stay off the UI thread; the loader asks for a repaint
            widget.load_in_background(context.request_refresh)
            error = widget.load_error
            if error:
                self.update(Text(f"Could not load {widget.kind.value}s: {error}", style="bold red"))
            else:
                self.update(Text(f"Loading {widget.kind.value}s...", style="dim italic"))
            return
        self.update(self._table(_TITLES.get(view.value, view.value), widget))

    @staticmethod
    def _viewer_panel(viewer: Viewer) -> Panel:
        return Panel(
            Text(viewer.render_text()),
            title=viewer.title,
            subtitle="[q/Esc] close  ·  ↑↓ scroll",
            border_style="bright_cyan",
        )

    @staticmethod
    def _table(title: str, widget: EntityListWidget) -> Table:
        rows = widget.rows
        columns = list(rows[0].fields) if rows else []
        table = Table(
            title=title,
            title_style="bold cyan",
            caption=f"sort: {widget.sort_mode.value}"
            + (f"  ·  filter: {widget.filter_pattern}" if widget.filter_pattern else ""),
            caption_style="dim",
            expand=True,
            header_style="bold bright_white on grey23",
            border_style="bright_cyan",
            padding=(0, 1),
        )
        table.add_column("ID", style="dim", width=12, no_wrap=True)
        table.add_column("Name", style="bold white", ratio=2, no_wrap=True)
        for column in columns:
            table.add_column(column, no_wrap=True)

        if not rows:
            table.add_row("", Text(f"No {widget.kind.value}s", style="dim italic"), *[""] * len(columns))
            return table

        cursor = widget.cursor
        for index, entity in enumerate(rows):
            table.add_row(
                entity.short_id,
                entity.name,
                *[entity.fields.get(column, "") for column in columns],
                style="reverse" if index == cursor else None,
            )
        return table
