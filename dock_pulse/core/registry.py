"""Widget registry: persistent per-view widgets plus the active ephemeral set.

Invariant: a widget is in the active set if and only if it is mounted.
``add`` and ``remove`` are the only mutators and the only places where the
mount/unmount hooks of ephemeral widgets run.
"""

from __future__ import annotations

import threading
from enum import Enum

from dock_pulse.core.widgets import EntityListWidget, Widget
from dock_pulse.utils.logger import get_logger

log = get_logger(__name__)


class ViewMode(Enum):
    """Which screen is active; exactly one at a time."""
    SERVICES = "services"
    IMAGES = "images"
    SERVICE_TASKS = "service_tasks"


class WidgetRegistryError(Exception):
    """Base class for registry failures."""


class WidgetMountError(WidgetRegistryError):
    """The widget's mount hook failed; it was not added."""


class WidgetUnmountError(WidgetRegistryError):
    """The widget's unmount hook failed; it is still registered."""


class DuplicateWidgetError(WidgetRegistryError):
    """A widget with the same name is already active."""


class WidgetRegistry:
    """Thread-safe owner of the active widget set.

    The per-view widgets are created once by the caller and never destroyed;
    ephemeral widgets come and go through ``add``/``remove``.
    """

    def __init__(self, views: dict[ViewMode, EntityListWidget]):
        self._views = dict(views)
        self._active: dict[str, Widget] = {}
        self._lock = threading.Lock()

    def widget_for_view(self, view: ViewMode) -> EntityListWidget:
        return self._views[view]

    def add(self, widget: Widget) -> None:
        """Mount ``widget`` and make it active.

        Raises:
            DuplicateWidgetError: the name is already in use.
            WidgetMountError: the mount hook failed; nothing changed.
        """
        with self._lock:
            if widget.name in self._active:
                raise DuplicateWidgetError(f"widget '{widget.name}' is already active")
            try:
                widget.mount()
            except Exception as e:
                log.warning("Could not mount widget %s: %s", widget.name, e)
                raise WidgetMountError(f"could not mount {widget.name}: {e}") from e
            self._active[widget.name] = widget
        log.info("Mounted widget %s", widget.name)

    def remove(self, widget: Widget) -> None:
        """Unmount ``widget`` and drop it from the active set.

        Raises:
            WidgetUnmountError: the unmount hook failed; the widget stays active.
        """
        with self._lock:
            try:
                widget.unmount()
            except Exception as e:
                log.warning("Could not unmount widget %s: %s", widget.name, e)
                raise WidgetUnmountError(f"could not unmount {widget.name}: {e}") from e
            if self._active.get(widget.name) is widget:
                del self._active[widget.name]
        log.info("Unmounted widget %s", widget.name)

    def get(self, name: str) -> Widget | None:
        with self._lock:
            return self._active.get(name)

    def active_widgets(self) -> list[Widget]:
        with self._lock:
            return list(self._active.values())

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._active
