"""Screen event handlers — the focus state machine of each view.

For every input event the active handler either:
    - forwards it to the modal/viewer that currently owns input,
    - acts on it directly (a control signal or a command character), or
    - delegates it to the shared FallbackHandler (navigation, views, quit).

Modal hand-off:
    open session → forwarding=True → registry.add(modal) → spawn task
    task: run_interaction → registry.remove(modal) → forwarding=False
          → (not canceled) run the backend action → refresh
Viewer hand-off is the same without the registry and without a result;
the handler gives up focus until the viewer closes.
"""

from __future__ import annotations

import re
import threading
from contextlib import nullcontext
from typing import TYPE_CHECKING, Callable

from dock_pulse.core.backend import Backend, BackendError
from dock_pulse.core.events import (
    ControlKey,
    EventSource,
    ForwardingChannel,
    ForwardingSession,
    InputEvent,
)
from dock_pulse.core.modals import AskForConfirmation, ImageRunWidget, InteractionResult, ModalWidget
from dock_pulse.core.registry import ViewMode, WidgetRegistryError, WidgetUnmountError
from dock_pulse.core.viewers import LogStreamViewer, Pager, Viewer
from dock_pulse.core.widgets import EntityListWidget, NoSelectionError
from dock_pulse.utils.config import CONFIRM_ANSWERS, SESSION_START_TIMEOUT, VIEW_KEYS
from dock_pulse.utils.logger import get_logger

if TYPE_CHECKING:
    from dock_pulse.core.dispatch import DashboardContext, Dispatcher

log = get_logger(__name__)

# (handled, keep_focus)
Outcome = tuple[bool, bool]
NOT_HANDLED: Outcome = (False, True)
HANDLED: Outcome = (True, True)

# plain ASCII decimal, optionally signed
_REPLICAS = re.compile(r"[+-]?[0-9]+")


# ─── Fallback ───────────────────────────────────────────────────────


class FallbackHandler:
    """Shared handler for events no screen claims: navigation, view switching, quit."""

    PAGE = 10

    def __init__(self, context: DashboardContext, view_keys: dict[str, str] | None = None):
        self.context = context
        self.dispatcher: Dispatcher | None = None
        self._view_keys = {
            ch: ViewMode(view) for ch, view in (VIEW_KEYS if view_keys is None else view_keys).items()
        }

    def attach(self, dispatcher: Dispatcher) -> None:
        self.dispatcher = dispatcher

    def handle(self, event: InputEvent) -> None:
        moves = {
            ControlKey.UP: -1,
            ControlKey.DOWN: 1,
            ControlKey.PAGE_UP: -self.PAGE,
            ControlKey.PAGE_DOWN: self.PAGE,
        }
        if event.key in moves:
            widget = self.context.registry.widget_for_view(self.dispatcher.view)
            widget.move_cursor(moves[event.key])
        elif event.key is ControlKey.QUIT or event.char in ("q", "Q"):
            self.context.quit()
            return
        elif event.char in self._view_keys:
            self.dispatcher.activate(self._view_keys[event.char])
            return
        else:
            log.debug("No handler for %s", event)
            return
        self.context.request_refresh()


# ─── Screen handler base ────────────────────────────────────────────


class ScreenEventHandler:
    """Per-view focus state machine.

    ``forwarding`` is True while a modal owns the input stream; ``has_focus``
    is False while a full-screen viewer spawned by this handler owns it.
    Both are only changed by this handler's dispatch path or by the tasks it
    spawned.
    """

    view: ViewMode
    kind_label = "entity"

    def __init__(self, context: DashboardContext, backend: Backend | None, fallback: FallbackHandler):
        self.context = context
        self.backend = backend
        self.fallback = fallback
        self.dispatcher: Dispatcher | None = None
        self.forwarding = False
        self._focus = True
        self._lock = threading.Lock()
        self._channel = ForwardingChannel(type(self).__name__)

    def attach(self, dispatcher: Dispatcher) -> None:
        self.dispatcher = dispatcher

    def widget(self) -> EntityListWidget:
        return self.context.registry.widget_for_view(self.view)

    @property
    def has_focus(self) -> bool:
        return self._focus

    def set_focus(self, focus: bool) -> None:
        self._focus = focus

    # ── Dispatch ──

    def handle(self, event: InputEvent) -> None:
        with self._lock:
            if self._channel.push(event):
                return

        outcome = NOT_HANDLED
        if event.key is not None:
            outcome = self.handle_key(event.key)
        if not outcome[0] and event.char is not None:
            outcome = self.handle_char(event.char)

        handled, keep_focus = outcome
        if not handled:
            self.fallback.handle(event)
            return
        self.set_focus(keep_focus)
        if self.has_focus:
            self.context.request_refresh()

    def handle_key(self, key: ControlKey) -> Outcome:
        return NOT_HANDLED

    def handle_char(self, char: str) -> Outcome:
        return NOT_HANDLED

    # ── Direct actions ──

    def act(self, action: Callable[[str], object], failure: str) -> bool:
        """Run ``action`` on the selected entity; report failures as a message."""
        try:
            self.widget().on_event(action)
        except (NoSelectionError, BackendError, WidgetRegistryError) as e:
            self.context.appmessage(f"{failure}: {e}")
            return False
        return True

    def sort(self) -> Outcome:
        self.widget().sort()
        return HANDLED

    def reload(self) -> Outcome:
        self.widget().unmount()
        return HANDLED

    # ── Modal hand-off ──

    def run_modal(self, modal: ModalWidget, on_result: Callable[[str], None]) -> bool:
        """Give ``modal`` the input stream; call ``on_result`` unless canceled.

        Returns False if the modal could not be mounted (nothing was spawned).
        """
        with self._lock:
            session = self._channel.open(modal.name)
            self.forwarding = True
        try:
            self.context.registry.add(modal)
        except WidgetRegistryError as e:
            self._end_session()
            self.context.appmessage(f"Cannot open {modal.name}: {e}")
            return False

        task = threading.Thread(
            target=self._modal_task,
            args=(modal, session, on_result),
            name=f"modal-{modal.name}",
            daemon=True,
        )
        task.start()
        if not session.ready.wait(SESSION_START_TIMEOUT):
            log.warning("%s did not start within %ss", task.name, SESSION_START_TIMEOUT)
        return True

    def _modal_task(
        self,
        modal: ModalWidget,
        session: ForwardingSession,
        on_result: Callable[[str], None],
    ) -> None:
        session.ready.set()
        events = EventSource(session, lambda _event: self.context.request_refresh())
        result = InteractionResult.cancel()
        try:
            result = modal.run_interaction(events)
        except Exception:
            log.exception("Interaction with %s failed", modal.name)
            self.context.appmessage(f"{modal.name} closed unexpectedly")
        finally:
            try:
                self.context.registry.remove(modal)
            except WidgetUnmountError as e:
                self.context.appmessage(str(e))
            self._end_session()

        if result.canceled:
            log.debug("%s canceled", modal.name)
        else:
            on_result(result.text)
        self.context.request_refresh()

    def _end_session(self, regain_focus: bool = False) -> None:
        dispatcher = self.dispatcher
        # unread events must be back in the queue before the loop takes the next one
        with dispatcher.paused() if dispatcher is not None else nullcontext():
            with self._lock:
                unread = self._channel.close()
                self.forwarding = False
                if regain_focus:
                    self._focus = True
            if unread and dispatcher is not None:
                dispatcher.requeue(unread)

    # ── Viewer hand-off ──

    def spawn_viewer(self, viewer: Viewer) -> None:
        """Hand input and rendering to ``viewer`` until the user closes it."""
        with self._lock:
            session = self._channel.open(viewer.title)
        self.context.open_viewer(viewer)
        viewer.start()
        self.context.request_refresh()
        task = threading.Thread(
            target=self._viewer_task,
            args=(viewer, session),
            name=f"viewer-{viewer.title}",
            daemon=True,
        )
        task.start()
        if not session.ready.wait(SESSION_START_TIMEOUT):
            log.warning("%s did not start within %ss", task.name, SESSION_START_TIMEOUT)

    def _viewer_task(self, viewer: Viewer, session: ForwardingSession) -> None:
        session.ready.set()
        events = EventSource(session, lambda _event: self.context.request_refresh())
        try:
            viewer.run(events)
        except Exception:
            log.exception("Viewer %s failed", viewer.title)
            self.context.appmessage(f"{viewer.title} closed unexpectedly")
        finally:
            self.context.close_viewer(viewer)
            self._end_session(regain_focus=True)
            if self.dispatcher is not None:
                self.dispatcher.viewer_closed(self)


# ─── Services ───────────────────────────────────────────────────────


class ServicesScreenEventHandler(ScreenEventHandler):
    view = ViewMode.SERVICES

    def handle_key(self, key: ControlKey) -> Outcome:
        if key is ControlKey.SORT:
            return self.sort()
        if key is ControlKey.REFRESH:
            self.context.appmessage("Refreshing the service list")
            return self.reload()
        if key is ControlKey.REMOVE:
            self.run_modal(
                AskForConfirmation("About to remove the selected service. Do you want to proceed? y/N"),
                self._remove_confirmed,
            )
            return HANDLED
        if key is ControlKey.SCALE:
            self.run_modal(
                AskForConfirmation("Scale service. Number of replicas?"),
                self._scale_to,
            )
            return HANDLED
        if key is ControlKey.CONFIRM:
            self.act(self.dispatcher.show_service_tasks, "There was an error showing the service tasks")
            return HANDLED
        return NOT_HANDLED

    def handle_char(self, char: str) -> Outcome:
        if char == "%":
            self.run_modal(
                AskForConfirmation("Filter? (blank to remove current filter)"),
                self.widget().filter,
            )
            return HANDLED
        if char in ("i", "I"):
            def inspect_service(service_id: str) -> None:
                document = self.backend.inspect_entity(service_id)
                self.spawn_viewer(Pager(f"Service {service_id}", document))

            if self.act(inspect_service, "There was an error inspecting the service"):
                return True, False
            return HANDLED
        if char == "l":
            def show_logs(service_id: str) -> None:
                stream = self.backend.stream_logs(service_id)
                self.spawn_viewer(LogStreamViewer(
                    f"Logs of service {service_id}", stream, on_update=self.context.request_refresh,
                ))

            if self.act(show_logs, "There was an error showing service logs"):
                return True, False
            return HANDLED
        return NOT_HANDLED

    def _remove_confirmed(self, answer: str) -> None:
        if answer not in CONFIRM_ANSWERS:
            return

        def remove_service(service_id: str) -> None:
            self.backend.remove_entity(service_id)

        self.act(remove_service, "There was an error removing the service")

    def _scale_to(self, answer: str) -> None:
        replicas = int(answer) if _REPLICAS.fullmatch(answer) else -1
        if replicas < 0:
            self.context.appmessage(f"Cannot scale service, invalid number of replicas: {answer}")
            return

        def scale_service(service_id: str) -> None:
            self.backend.scale_entity(service_id, replicas)
            self.context.appmessage(f"Service {service_id} scaled to {replicas} replicas")

        self.act(scale_service, "There was an error scaling the service")


# ─── Service tasks ──────────────────────────────────────────────────


class ServiceTasksScreenEventHandler(ScreenEventHandler):
    """Read-only list of the tasks of one service; Escape goes back."""

    view = ViewMode.SERVICE_TASKS

    def __init__(self, context: DashboardContext, backend: Backend | None, fallback: FallbackHandler):
        super().__init__(context, backend, fallback)
        self.service_id: str | None = None

    def load_tasks(self):
        if self.service_id is None:
            return []
        return self.backend.entity_tasks(self.service_id)

    def handle_key(self, key: ControlKey) -> Outcome:
        if key is ControlKey.SORT:
            return self.sort()
        if key is ControlKey.REFRESH:
            return self.reload()
        if key is ControlKey.CANCEL:
            self.dispatcher.activate(ViewMode.SERVICES)
            return HANDLED
        return NOT_HANDLED


# ─── Images ─────────────────────────────────────────────────────────


class ImagesScreenEventHandler(ScreenEventHandler):
    view = ViewMode.IMAGES

    def handle_key(self, key: ControlKey) -> Outcome:
        if key is ControlKey.SORT:
            return self.sort()
        if key is ControlKey.REFRESH:
            return self.reload()
        if key is ControlKey.REMOVE_DANGLING:
            self._remove_dangling()
            return HANDLED
        if key in (ControlKey.REMOVE, ControlKey.REMOVE_IMAGE):
            self.act(lambda image_id: self.backend.remove_entity(image_id, force=False),
                     "Error removing image")
            return HANDLED
        if key is ControlKey.FORCE_REMOVE:
            self.act(lambda image_id: self.backend.remove_entity(image_id, force=True),
                     "Error forcing image removal")
            return HANDLED
        if key is ControlKey.CONFIRM:
            def inspect_image(image_id: str) -> None:
                document = self.backend.inspect_entity(image_id)
                self.spawn_viewer(Pager(f"Image {image_id}", document))

            if self.act(inspect_image, "Error inspecting image"):
                return True, False
            return HANDLED
        return NOT_HANDLED

    def handle_char(self, char: str) -> Outcome:
        if char == "2":
            # already on the images screen
            return HANDLED
        if char in ("i", "I"):
            def history(image_id: str) -> None:
                layers = self.backend.entity_history(image_id)
                self.spawn_viewer(Pager(f"History of image {image_id}", layers))

            if self.act(history, "Error showing image history"):
                return True, False
            return HANDLED
        if char in ("r", "R"):
            def run_image(image_id: str) -> None:
                image = self.backend.entity_by_id(image_id)

                def run_with(args: str) -> None:
                    try:
                        self.backend.run_entity(image, args)
                    except BackendError as e:
                        self.context.appmessage(f"Error running image: {e}")

                self.run_modal(ImageRunWidget(image), run_with)

            self.act(run_image, "Error running image")
            return HANDLED
        return NOT_HANDLED

    def _remove_dangling(self) -> None:
        try:
            report = self.backend.remove_dangling()
        except BackendError as e:
            self.context.appmessage(f"Error removing dangling images: {e}")
            return
        self.context.appmessage(report or "No dangling images to remove")
        self.widget().unmount()
