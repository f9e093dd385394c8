"""Tests for screen event routing, the modal hand-off and viewer focus."""

import threading
from unittest.mock import MagicMock

import pytest

from conftest import FakeLogStream, chars, wait_until
from dock_pulse.core.events import ControlKey, InputEvent
from dock_pulse.core.modals import AskForConfirmation, InteractionResult, ModalWidget
from dock_pulse.core.registry import ViewMode
from dock_pulse.core.viewers import LogStreamViewer, Pager
from dock_pulse.core.widgets import Entity, EntityKind, SortMode


def services_handler(dashboard):
    return dashboard.dispatcher.handler(ViewMode.SERVICES)


def images_handler(dashboard):
    dashboard.dispatcher.activate(ViewMode.IMAGES)
    return dashboard.dispatcher.current


def wait_modal_done(handler, dashboard, name="prompt"):
    assert wait_until(lambda: not handler.forwarding and name not in dashboard.registry)


class ExplodingModal(ModalWidget):
    def run_interaction(self, events):
        raise RuntimeError("widget crashed")


class UnmountableModal(AskForConfirmation):
    def on_unmount(self):
        raise OSError("stuck")


class MountFailingModal(AskForConfirmation):
    def on_mount(self):
        raise OSError("no room on screen")


class TestDirectActions:
    """Control signals handled without a modal."""

    def test_remove_image_success(self, dashboard):
        handler = images_handler(dashboard)
        widget = handler.widget()
        rows_before = widget.rows
        dashboard.refreshes.clear()

        dashboard.send(ControlKey.REMOVE)

        assert ("remove", "abc123", False) in dashboard.images.calls
        assert dashboard.messages == []
        assert widget.mounted
        assert widget.rows == rows_before
        assert dashboard.refreshes

    def test_force_remove_image(self, dashboard):
        images_handler(dashboard)
        dashboard.send(ControlKey.FORCE_REMOVE)
        assert ("remove", "abc123", True) in dashboard.images.calls

    def test_remove_image_failure_is_reported(self, dashboard):
        images_handler(dashboard)
        dashboard.images.fail["remove"] = "image is being used by a container"
        dashboard.send(ControlKey.REMOVE_IMAGE)
        assert dashboard.messages == [
            "Error removing image: image is being used by a container"
        ]

    def test_no_selection_makes_no_backend_call(self, dashboard):
        handler = images_handler(dashboard)
        dashboard.images.entities = []
        handler.widget().unmount()
        handler.widget().mount()
        dashboard.images.calls.clear()

        dashboard.send(ControlKey.REMOVE)

        assert dashboard.images.calls == []
        assert dashboard.messages == ["Error removing image: no image selected"]

    def test_sort_cycles_mode(self, dashboard):
        handler = services_handler(dashboard)
        dashboard.send(ControlKey.SORT)
        assert handler.widget().sort_mode is SortMode.NAME_DESC

    def test_refresh_unmounts_list(self, dashboard):
        handler = services_handler(dashboard)
        dashboard.send(ControlKey.REFRESH)
        assert not handler.widget().mounted
        assert dashboard.messages == ["Refreshing the service list"]

    def test_remove_dangling_reloads_images(self, dashboard):
        handler = images_handler(dashboard)
        dashboard.send(ControlKey.REMOVE_DANGLING)
        assert "prune" in dashboard.images.operations()
        assert dashboard.messages == ["Total reclaimed space: 0B"]
        assert not handler.widget().mounted

    def test_already_on_images_is_handled(self, dashboard):
        handler = images_handler(dashboard)
        handler.fallback = MagicMock()
        dashboard.send(*chars("2"))
        handler.fallback.handle.assert_not_called()

    def test_unknown_event_goes_to_fallback(self, dashboard):
        handler = services_handler(dashboard)
        handler.fallback = MagicMock()
        event = InputEvent.of_char("z")
        dashboard.send(event)
        handler.fallback.handle.assert_called_once_with(event)

    def test_show_service_tasks(self, dashboard):
        dashboard.services.tasks = [Entity("task1", "web.1", EntityKind.TASK)]
        dashboard.send(ControlKey.CONFIRM)
        assert dashboard.dispatcher.view is ViewMode.SERVICE_TASKS
        tasks = dashboard.registry.widget_for_view(ViewMode.SERVICE_TASKS)
        tasks.ensure_mounted()
        assert [t.id for t in tasks.rows] == ["task1"]
        assert ("tasks", "abc123") in dashboard.services.calls

        dashboard.send(ControlKey.CANCEL)
        assert dashboard.dispatcher.view is ViewMode.SERVICES


class TestModalProtocol:
    """Confirmation and text-entry modals."""

    def test_scale_success(self, dashboard):
        handler = services_handler(dashboard)
        dashboard.send(ControlKey.SCALE)
        assert handler.forwarding
        assert "prompt" in dashboard.registry

        dashboard.send(*chars("3"), ControlKey.CONFIRM)

        assert wait_until(lambda: "Service abc123 scaled to 3 replicas" in dashboard.messages)
        wait_modal_done(handler, dashboard)
        assert ("scale", "abc123", 3) in dashboard.services.calls

    def test_scale_rejects_negative_replicas(self, dashboard):
        handler = services_handler(dashboard)
        dashboard.send(ControlKey.SCALE, *chars("-1"), ControlKey.CONFIRM)

        assert wait_until(lambda: dashboard.messages)
        wait_modal_done(handler, dashboard)
        assert dashboard.messages == ["Cannot scale service, invalid number of replicas: -1"]
        assert "scale" not in dashboard.services.operations()

    def test_scale_rejects_non_numeric(self, dashboard):
        handler = services_handler(dashboard)
        dashboard.send(ControlKey.SCALE, *chars("lots"), ControlKey.CONFIRM)

        assert wait_until(lambda: dashboard.messages)
        wait_modal_done(handler, dashboard)
        assert dashboard.messages == ["Cannot scale service, invalid number of replicas: lots"]

    @pytest.mark.parametrize("answer", ["3_0", " 3", "3 ", "٣", "+", ""])
    def test_scale_rejects_non_decimal_answers(self, dashboard, answer):
        handler = services_handler(dashboard)
        handler._scale_to(answer)
        assert dashboard.messages == [f"Cannot scale service, invalid number of replicas: {answer}"]
        assert "scale" not in dashboard.services.operations()

    def test_scale_accepts_signed_zero_padded(self, dashboard):
        handler = services_handler(dashboard)
        handler._scale_to("+03")
        assert ("scale", "abc123", 3) in dashboard.services.calls

    def test_scale_backend_failure_still_cleans_up(self, dashboard):
        handler = services_handler(dashboard)
        dashboard.services.fail["scale"] = "service not found"
        dashboard.send(ControlKey.SCALE, *chars("2"), ControlKey.CONFIRM)

        assert wait_until(lambda: dashboard.messages)
        wait_modal_done(handler, dashboard)
        assert dashboard.messages == ["There was an error scaling the service: service not found"]

    def test_confirmed_remove(self, dashboard):
        handler = services_handler(dashboard)
        dashboard.send(ControlKey.REMOVE, *chars("y"), ControlKey.CONFIRM)

        assert wait_until(lambda: "remove" in dashboard.services.operations())
        wait_modal_done(handler, dashboard)
        assert ("remove", "abc123", False) in dashboard.services.calls

    def test_canceled_remove_never_calls_backend(self, dashboard):
        handler = services_handler(dashboard)
        dashboard.send(ControlKey.REMOVE, *chars("y"), ControlKey.CANCEL)

        wait_modal_done(handler, dashboard)
        assert "remove" not in dashboard.services.operations()
        assert dashboard.messages == []

    def test_remove_answered_no(self, dashboard):
        handler = services_handler(dashboard)
        dashboard.send(ControlKey.REMOVE, *chars("n"), ControlKey.CONFIRM)

        wait_modal_done(handler, dashboard)
        assert "remove" not in dashboard.services.operations()

    def test_events_are_only_forwarded_while_modal_open(self, dashboard):
        handler = services_handler(dashboard)
        widget = handler.widget()
        dashboard.send(ControlKey.SCALE)
        modal = dashboard.registry.get("prompt")

        dashboard.send(
            ControlKey.SORT, ControlKey.REMOVE, ControlKey.REFRESH, *chars("il%2q")
        )

        assert wait_until(lambda: modal.text == "il%2q")
        assert widget.sort_mode is SortMode.NAME
        assert widget.mounted
        assert dashboard.dispatcher.view is ViewMode.SERVICES
        assert dashboard.quits == []
        assert dashboard.context.viewer is None
        assert [m for m in dashboard.registry.active_widgets()] == [modal]
        assert set(dashboard.services.operations()) == {"list"}

        dashboard.send(ControlKey.CANCEL)
        wait_modal_done(handler, dashboard)
        assert set(dashboard.services.operations()) == {"list"}

    def test_filter_modal(self, dashboard):
        handler = services_handler(dashboard)
        dashboard.send(*chars("%wor"), ControlKey.CONFIRM)

        wait_modal_done(handler, dashboard)
        assert wait_until(lambda: handler.widget().filter_pattern == "wor")
        assert [e.name for e in handler.widget().rows] == ["worker"]

    def test_run_image_with_arguments(self, dashboard):
        handler = images_handler(dashboard)
        dashboard.send(*chars("r"))
        assert "image-run" in dashboard.registry

        dashboard.send(*chars("-p 80:80"), ControlKey.CONFIRM)

        assert wait_until(lambda: "run" in dashboard.images.operations())
        wait_modal_done(handler, dashboard, name="image-run")
        assert ("run", "abc123", "-p 80:80") in dashboard.images.calls

    def test_run_image_lookup_failure(self, dashboard):
        handler = images_handler(dashboard)
        dashboard.images.fail["by_id"] = "no such image"
        dashboard.send(*chars("r"))

        assert not handler.forwarding
        assert "image-run" not in dashboard.registry
        assert dashboard.messages == ["Error running image: no such image"]

    def test_interaction_failure_still_cleans_up(self, dashboard):
        handler = services_handler(dashboard)
        on_result = MagicMock()

        assert handler.run_modal(ExplodingModal("exploding"), on_result)

        wait_modal_done(handler, dashboard, name="exploding")
        on_result.assert_not_called()
        assert dashboard.messages == ["exploding closed unexpectedly"]

    def test_mount_failure_spawns_nothing(self, dashboard):
        handler = services_handler(dashboard)
        on_result = MagicMock()

        assert not handler.run_modal(MountFailingModal("Number?"), on_result)

        assert not handler.forwarding
        assert "prompt" not in dashboard.registry
        assert dashboard.messages[0].startswith("Cannot open prompt")
        # input is interpreted again
        dashboard.send(ControlKey.SORT)
        assert handler.widget().sort_mode is SortMode.NAME_DESC

    def test_unmount_failure_leaves_modal_registered(self, dashboard):
        handler = services_handler(dashboard)
        on_result = MagicMock()
        modal = UnmountableModal("Number?")

        handler.run_modal(modal, on_result)
        dashboard.send(*chars("1"), ControlKey.CONFIRM)

        assert wait_until(lambda: on_result.called)
        assert not handler.forwarding
        assert "prompt" in dashboard.registry
        on_result.assert_called_once_with("1")
        assert any("could not unmount prompt" in m for m in dashboard.messages)

    def test_unread_events_are_requeued_in_order(self, dashboard):
        handler = services_handler(dashboard)
        go = threading.Event()

        class OneShot(AskForConfirmation):
            def run_interaction(self, events):
                go.wait(2)
                event = events.next_event()
                events.event_handled(event)
                return InteractionResult(text=event.char, canceled=False)

        results = []
        handler.run_modal(OneShot("Number?"), results.append)
        dashboard.send(*chars("abc"))
        late = InputEvent.of_char("x")
        dashboard.dispatcher.post(late)
        handler.fallback = MagicMock()

        go.set()
        assert wait_until(lambda: results == ["a"])
        wait_modal_done(handler, dashboard)

        assert dashboard.dispatcher.process_pending() == 3
        delivered = [c.args[0] for c in handler.fallback.handle.call_args_list]
        assert delivered == chars("bc") + [late]


class TestViewers:
    """Full-screen viewers take focus and hand it back on close."""

    def test_inspect_image_pager(self, dashboard):
        handler = images_handler(dashboard)
        dashboard.refreshes.clear()
        dashboard.send(ControlKey.CONFIRM)

        assert not handler.has_focus
        assert isinstance(dashboard.context.viewer, Pager)
        assert ("inspect", "abc123") in dashboard.images.calls

        dashboard.send(ControlKey.DOWN, *chars("q"))

        assert wait_until(lambda: handler.has_focus)
        assert dashboard.context.viewer is None
        assert dashboard.dispatcher.current is handler
        assert handler.widget().cursor == 0

    def test_opening_a_viewer_requests_a_repaint(self, dashboard):
        handler = images_handler(dashboard)
        dashboard.refreshes.clear()
        dashboard.send(*chars("i"))

        assert dashboard.context.viewer is not None
        assert not handler.has_focus
        assert dashboard.refreshes

        dashboard.send(*chars("q"))
        assert wait_until(lambda: handler.has_focus)

    def test_log_lines_request_repaints(self, dashboard):
        handler = services_handler(dashboard)
        release = threading.Event()

        class HeldStream(FakeLogStream):
            def __iter__(self):
                release.wait(2)
                yield from super().__iter__()

        dashboard.services.stream_logs = lambda service_id: HeldStream(["late line"])
        dashboard.send(*chars("l"))
        viewer = dashboard.context.viewer
        dashboard.refreshes.clear()
        release.set()

        assert wait_until(lambda: viewer.lines() == ["late line"])
        assert wait_until(lambda: dashboard.refreshes)

        dashboard.send(ControlKey.CANCEL)
        assert wait_until(lambda: handler.has_focus)

    def test_inspect_failure_keeps_focus(self, dashboard):
        handler = services_handler(dashboard)
        dashboard.services.fail["inspect"] = "boom"
        dashboard.send(*chars("i"))

        assert handler.has_focus
        assert dashboard.context.viewer is None
        assert dashboard.messages == ["There was an error inspecting the service: boom"]

    def test_image_history_pager(self, dashboard):
        handler = images_handler(dashboard)
        dashboard.send(*chars("i"))
        viewer = dashboard.context.viewer
        assert isinstance(viewer, Pager)
        assert any("CreatedBy" in line for line in viewer.lines())

        dashboard.send(ControlKey.CANCEL)
        assert wait_until(lambda: handler.has_focus)

    def test_service_logs_stream(self, dashboard):
        handler = services_handler(dashboard)
        dashboard.send(*chars("l"))

        viewer = dashboard.context.viewer
        assert isinstance(viewer, LogStreamViewer)
        assert wait_until(lambda: viewer.lines() == ["line one", "line two"])

        dashboard.send(ControlKey.CANCEL)
        assert wait_until(lambda: handler.has_focus)
        assert dashboard.services.streams[0].closed.is_set()

    @pytest.mark.parametrize("view", [ViewMode.SERVICES, ViewMode.IMAGES])
    def test_navigation_after_viewer_closes(self, dashboard, view):
        dashboard.dispatcher.activate(view)
        handler = dashboard.dispatcher.current
        dashboard.send(*chars("i"))
        dashboard.send(*chars("q"))
        assert wait_until(lambda: handler.has_focus)

        dashboard.send(ControlKey.DOWN)
        assert handler.widget().cursor == 1


class TestFallback:
    """Navigation, view switching and quit."""

    def test_cursor_moves(self, dashboard):
        dashboard.send(ControlKey.DOWN)
        widget = dashboard.registry.widget_for_view(ViewMode.SERVICES)
        assert widget.selected().id == "xyz789"
        dashboard.send(ControlKey.PAGE_UP)
        assert widget.selected().id == "abc123"

    def test_view_switch(self, dashboard):
        dashboard.send(*chars("2"))
        assert dashboard.dispatcher.view is ViewMode.IMAGES
        dashboard.send(*chars("1"))
        assert dashboard.dispatcher.view is ViewMode.SERVICES

    def test_quit(self, dashboard):
        dashboard.send(*chars("q"))
        assert dashboard.quits == [1]
