"""Screen widgets: the lifecycle base class and the actionable entity list.

Every widget has a unique name and a lifecycle state (UNMOUNTED → MOUNTED →
UNMOUNTED ...). List widgets are *actionable*: they know which entity is
selected and run a caller-supplied action against its id.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, TypeVar

from dock_pulse.utils.logger import get_logger

log = get_logger(__name__)

T = TypeVar("T")


class NoSelectionError(LookupError):
    """Raised when an action needs a selected entity and there is none."""


class WidgetState(Enum):
    UNMOUNTED = "unmounted"
    MOUNTED = "mounted"


class EntityKind(Enum):
    SERVICE = "service"
    IMAGE = "image"
    TASK = "task"


@dataclass(frozen=True)
class Entity:
    """Something the backend manages, as shown in a list row."""
    id: str
    name: str
    kind: EntityKind
    fields: dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    @property
    def short_id(self) -> str:
        return self.id[:12]


class Widget:
    """Base screen element with a name and mount/unmount hooks.

    Subclasses extend ``on_mount`` / ``on_unmount``; either may raise to veto
    the transition, in which case the state is left unchanged.
    """

    def __init__(self, name: str):
        self.name = name
        self.state = WidgetState.UNMOUNTED

    @property
    def mounted(self) -> bool:
        return self.state is WidgetState.MOUNTED

    def mount(self) -> None:
        self.on_mount()
        self.state = WidgetState.MOUNTED

    def unmount(self) -> None:
        self.on_unmount()
        self.state = WidgetState.UNMOUNTED

    def on_mount(self) -> None:
        pass

    def on_unmount(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} {self.state.value}>"


# ─── Sorting ────────────────────────────────────────────────────────


class SortMode(Enum):
    """Column orders an entity list cycles through on each sort request."""
    NAME = "name"
    NAME_DESC = "name_desc"
    ID = "id"
    ID_DESC = "id_desc"

    def next(self) -> SortMode:
        modes = list(SortMode)
        return modes[(modes.index(self) + 1) % len(modes)]

    def apply(self, entities: list[Entity]) -> list[Entity]:
        if self in (SortMode.NAME, SortMode.NAME_DESC):
            key = lambda e: (e.name.lower(), e.id)
        else:
            key = lambda e: e.id
        reverse = self in (SortMode.NAME_DESC, SortMode.ID_DESC)
        return sorted(entities, key=key, reverse=reverse)


# ─── Actionable list ────────────────────────────────────────────────


class EntityListWidget(Widget):
    """A persistent, sortable, filterable list of entities with a cursor.

    Mounting loads rows through ``loader``; unmounting drops them so the next
    mount reloads (this is how a view refresh works). The widget is shared by
    the dispatch loop and modal tasks, so row/cursor state sits behind a lock.
    """

    def __init__(self, name: str, kind: EntityKind, loader: Callable[[], list[Entity]]):
        super().__init__(name)
        self.kind = kind
        self._loader = loader
        self._lock = threading.RLock()
        self._all: list[Entity] = []
        self._rows: list[Entity] = []
        self._cursor = 0
        self._sort = SortMode.NAME
        self._filter = ""
        self._loading = False
        self._load_error: str | None = None

    # ── Lifecycle ──

    def on_mount(self) -> None:
        entities = self._loader()
        with self._lock:
            self._all = list(entities)
            self._apply()
        log.debug("%s: loaded %d %ss", self.name, len(entities), self.kind.value)

    def on_unmount(self) -> None:
        with self._lock:
            self._all = []
            self._rows = []

    def ensure_mounted(self) -> None:
        """Mount the widget if a refresh left it unmounted."""
        if not self.mounted:
            self.mount()

    @property
    def loading(self) -> bool:
        with self._lock:
            return self._loading

    @property
    def load_error(self) -> str | None:
        """Why the last background load failed, if it did."""
        with self._lock:
            return self._load_error

    def load_in_background(self, on_done: Callable[[], None] | None = None) -> bool:
        """Mount on a daemon thread, then call ``on_done``.

        Returns False when the widget is already mounted or a load is running.
        """
        with self._lock:
            if self.mounted or self._loading:
                return False
            self._loading = True
        threading.Thread(
            target=self._load, args=(on_done,), name=f"load-{self.name}", daemon=True
        ).start()
        return True

    def _load(self, on_done: Callable[[], None] | None) -> None:
        error = None
        try:
            self.ensure_mounted()
        except Exception as e:
            log.warning("%s: could not load %ss: %s", self.name, self.kind.value, e)
            error = str(e)
        with self._lock:
            self._loading = False
            self._load_error = error
        if on_done:
            on_done()

    # ── Rows & selection ──

    @property
    def rows(self) -> list[Entity]:
        with self._lock:
            return list(self._rows)

    @property
    def cursor(self) -> int:
        with self._lock:
            return self._cursor

    @property
    def sort_mode(self) -> SortMode:
        return self._sort

    @property
    def filter_pattern(self) -> str:
        return self._filter

    def selected(self) -> Entity | None:
        with self._lock:
            if not self._rows:
                return None
            return self._rows[self._cursor]

    def move_cursor(self, delta: int) -> None:
        with self._lock:
            if not self._rows:
                self._cursor = 0
                return
            self._cursor = max(0, min(len(self._rows) - 1, self._cursor + delta))

    def sort(self) -> SortMode:
        """Switch to the next sort mode and re-order the rows."""
        with self._lock:
            self._sort = self._sort.next()
            self._apply()
            return self._sort

    def filter(self, pattern: str) -> None:
        """Show only entities whose name or id contains ``pattern``; blank clears."""
        with self._lock:
            self._filter = pattern.strip()
            self._apply()

    def on_event(self, action: Callable[[str], T]) -> T:
        """Run ``action`` with the selected entity's id.

        Raises:
            NoSelectionError: nothing is selected.
            Whatever ``action`` raises is propagated unchanged.
        """
        entity = self.selected()
        if entity is None:
            raise NoSelectionError(f"no {self.kind.value} selected")
        return action(entity.id)

    def _apply(self) -> None:
        selected = self._rows[self._cursor] if self._rows else None
        rows = self._all
        if self._filter:
            needle = self._filter.lower()
            rows = [e for e in rows if needle in e.name.lower() or needle in e.id.lower()]
        self._rows = self._sort.apply(rows)
        if selected is not None and selected in self._rows:
            self._cursor = self._rows.index(selected)
        else:
            self._cursor = min(self._cursor, max(len(self._rows) - 1, 0))
