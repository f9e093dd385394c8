"""Dispatch loop and the explicit context it routes events through.

The Dispatcher owns the only mutable reference to the active screen handler.
It changes at exactly two points: ``activate`` (view switch) and
``viewer_closed`` (a full-screen viewer handing focus back).
"""

from __future__ import annotations

import threading
from collections import deque
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator

from dock_pulse.core.backend import Backend
from dock_pulse.core.events import InputEvent
from dock_pulse.core.handlers import (
    FallbackHandler,
    ImagesScreenEventHandler,
    ScreenEventHandler,
    ServicesScreenEventHandler,
    ServiceTasksScreenEventHandler,
)
from dock_pulse.core.registry import ViewMode, WidgetRegistry
from dock_pulse.core.viewers import Viewer
from dock_pulse.core.widgets import EntityKind, EntityListWidget
from dock_pulse.utils.logger import get_logger

log = get_logger(__name__)


class DashboardContext:
    """Collaborators shared by every handler: registry, message sink, refresh."""

    def __init__(
        self,
        registry: WidgetRegistry,
        appmessage: Callable[[str], None],
        refresh: Callable[[], None] | None = None,
        quit: Callable[[], None] | None = None,
    ):
        self.registry = registry
        self.appmessage = appmessage
        self._refresh = refresh
        self._quit = quit
        self._viewer: Viewer | None = None
        self._lock = threading.Lock()

    def request_refresh(self) -> None:
        if self._refresh:
            self._refresh()

    def quit(self) -> None:
        if self._quit:
            self._quit()

    @property
    def viewer(self) -> Viewer | None:
        with self._lock:
            return self._viewer

    def open_viewer(self, viewer: Viewer) -> None:
        with self._lock:
            self._viewer = viewer

    def close_viewer(self, viewer: Viewer) -> None:
        with self._lock:
            if self._viewer is viewer:
                self._viewer = None


class Dispatcher:
    """Single-threaded reader delivering one event at a time to the active handler."""

    def __init__(
        self,
        context: DashboardContext,
        handlers: dict[ViewMode, ScreenEventHandler],
        fallback: FallbackHandler,
        view: ViewMode = ViewMode.SERVICES,
    ):
        self.context = context
        self._handlers = dict(handlers)
        self._view = view
        self._current = self._handlers[view]
        self._pending: deque[InputEvent] = deque()
        self._cond = threading.Condition()
        # held from popping an event until its handler returns
        self._dispatch_lock = threading.RLock()
        self._running = False
        self._thread: threading.Thread | None = None
        for handler in self._handlers.values():
            handler.attach(self)
        fallback.attach(self)

    @property
    def view(self) -> ViewMode:
        return self._view

    @property
    def current(self) -> ScreenEventHandler:
        return self._current

    def handler(self, view: ViewMode) -> ScreenEventHandler:
        return self._handlers[view]

    # ── Transitions ──

    def activate(self, view: ViewMode) -> None:
        """Make ``view``'s handler the target of the dispatch loop."""
        handler = self._handlers[view]
        handler.set_focus(True)
        self._view = view
        self._current = handler
        log.info("Switched to %s view", view.value)
        self.context.request_refresh()

    def viewer_closed(self, handler: ScreenEventHandler) -> None:
        """A viewer spawned by ``handler`` finished: give it the loop back."""
        self._view = handler.view
        self._current = handler
        self.context.request_refresh()

    def show_service_tasks(self, service_id: str) -> None:
        tasks = self._handlers[ViewMode.SERVICE_TASKS]
        tasks.service_id = service_id
        tasks.widget().unmount()
        self.activate(ViewMode.SERVICE_TASKS)

    # ── Loop ──

    def dispatch(self, event: InputEvent) -> None:
        with self._dispatch_lock:
            self._current.handle(event)

    @contextmanager
    def paused(self) -> Iterator[None]:
        """Keep the loop between two events until the block exits.

        A closing forwarding session uses this so that no later event can be
        handled before its unread events are back in the queue.
        """
        with self._dispatch_lock:
            yield

    def post(self, event: InputEvent) -> None:
        """Queue ``event`` for the loop; safe from any thread."""
        with self._cond:
            self._pending.append(event)
            self._cond.notify()

    def requeue(self, events: Iterable[InputEvent]) -> None:
        """Put events a closed session never consumed back at the head of the queue."""
        with self._cond:
            self._pending.extendleft(reversed(list(events)))
            self._cond.notify()

    def process_pending(self) -> int:
        """Dispatch queued events on the calling thread until none are left."""
        count = 0
        while True:
            with self._dispatch_lock:
                with self._cond:
                    if not self._pending:
                        return count
                    event = self._pending.popleft()
                self._dispatch_safely(event)
            count += 1

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._loop, name="dispatch", daemon=True)
        self._thread.start()
        log.info("Dispatch loop started on %s view", self._view.value)

    def stop(self) -> None:
        with self._cond:
            self._running = False
            self._cond.notify_all()
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=2)
        log.info("Dispatch loop stopped")

    def _loop(self) -> None:
        while True:
            with self._cond:
                while self._running and not self._pending:
                    self._cond.wait()
                if not self._running:
                    return
            with self._dispatch_lock:
                with self._cond:
                    if not self._pending:
                        continue
                    event = self._pending.popleft()
                self._dispatch_safely(event)

    def _dispatch_safely(self, event: InputEvent) -> None:
        try:
            self.dispatch(event)
        except Exception:
            log.exception("Unhandled error while dispatching %s", event)
            self.context.appmessage(f"Internal error while handling {event}")


# ─── Wiring ─────────────────────────────────────────────────────────


def build_dashboard(
    services: Backend,
    images: Backend,
    appmessage: Callable[[str], None],
    refresh: Callable[[], None] | None = None,
    quit: Callable[[], None] | None = None,
    view: ViewMode = ViewMode.SERVICES,
) -> Dispatcher:
    """Create the registry, handlers and dispatcher for the standard views."""
    tasks_handler: ServiceTasksScreenEventHandler | None = None

    def load_tasks():
        return tasks_handler.load_tasks() if tasks_handler else []

    registry = WidgetRegistry({
        ViewMode.SERVICES: EntityListWidget("service-list", EntityKind.SERVICE, services.list_entities),
        ViewMode.IMAGES: EntityListWidget("image-list", EntityKind.IMAGE, images.list_entities),
        ViewMode.SERVICE_TASKS: EntityListWidget("service-tasks", EntityKind.TASK, load_tasks),
    })
    context = DashboardContext(registry, appmessage, refresh=refresh, quit=quit)
    fallback = FallbackHandler(context)
    tasks_handler = ServiceTasksScreenEventHandler(context, services, fallback)
    handlers = {
        ViewMode.SERVICES: ServicesScreenEventHandler(context, services, fallback),
        ViewMode.IMAGES: ImagesScreenEventHandler(context, images, fallback),
        ViewMode.SERVICE_TASKS: tasks_handler,
    }
    return Dispatcher(context, handlers, fallback, view=view)
