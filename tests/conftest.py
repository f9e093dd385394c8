"""Shared fixtures: an in-memory backend and a fully wired dashboard."""

import threading
import time
from types import SimpleNamespace

import pytest

from dock_pulse.core.backend import BackendError
from dock_pulse.core.dispatch import build_dashboard
from dock_pulse.core.events import ControlKey, InputEvent
from dock_pulse.core.registry import ViewMode
from dock_pulse.core.widgets import Entity, EntityKind


class FakeLogStream:
    def __init__(self, lines):
        self._lines = list(lines)
        self.closed = threading.Event()

    def __iter__(self):
        yield from self._lines

    def close(self):
        self.closed.set()


class FakeBackend:
    """Records every call; ``fail[operation] = "msg"`` makes it raise."""

    def __init__(self, kind, entities=()):
        self.kind = kind
        self.entities = list(entities)
        self.calls = []
        self.fail = {}
        self.tasks = []
        self.log_lines = ["line one", "line two"]
        self.streams = []

    def _call(self, operation, *args):
        self.calls.append((operation, *args))
        if operation in self.fail:
            raise BackendError(self.fail[operation])

    def operations(self):
        return [call[0] for call in self.calls]

    def list_entities(self):
        self._call("list")
        return list(self.entities)

    def remove_entity(self, entity_id, force=False):
        self._call("remove", entity_id, force)

    def scale_entity(self, entity_id, replicas):
        self._call("scale", entity_id, replicas)

    def inspect_entity(self, entity_id):
        self._call("inspect", entity_id)
        return {"ID": entity_id, "Spec": {"Name": "x"}}

    def entity_history(self, entity_id):
        self._call("history", entity_id)
        return [{"CreatedBy": "/bin/sh -c #(nop) CMD [\"sh\"]"}]

    def entity_by_id(self, entity_id):
        self._call("by_id", entity_id)
        for entity in self.entities:
            if entity.id == entity_id:
                return entity
        raise BackendError(f"no such {self.kind.value}: {entity_id}")

    def run_entity(self, entity, args):
        self._call("run", entity.id, args)

    def stream_logs(self, entity_id):
        self._call("logs", entity_id)
        stream = FakeLogStream(self.log_lines)
        self.streams.append(stream)
        return stream

    def entity_tasks(self, entity_id):
        self._call("tasks", entity_id)
        return list(self.tasks)

    def remove_dangling(self):
        self._call("prune")
        return "Total reclaimed space: 0B"


def wait_until(predicate, timeout=2.0):
    """Poll ``predicate`` until it is true or ``timeout`` elapses."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def key(control):
    return InputEvent.of_key(control)


def chars(text):
    return [InputEvent.of_char(c) for c in text]


@pytest.fixture
def services():
    return FakeBackend(EntityKind.SERVICE, [
        Entity("abc123", "web", EntityKind.SERVICE, {"Replicas": "1/1"}),
        Entity("xyz789", "worker", EntityKind.SERVICE, {"Replicas": "2/2"}),
    ])


@pytest.fixture
def images():
    return FakeBackend(EntityKind.IMAGE, [
        Entity("abc123", "alpine:latest", EntityKind.IMAGE),
        Entity("fff999", "nginx:1.25", EntityKind.IMAGE),
    ])


@pytest.fixture
def dashboard(services, images):
    messages = []
    refreshes = []
    quits = []
    dispatcher = build_dashboard(
        services,
        images,
        appmessage=messages.append,
        refresh=lambda: refreshes.append(1),
        quit=lambda: quits.append(1),
    )
    registry = dispatcher.context.registry
    for view in (ViewMode.SERVICES, ViewMode.IMAGES):
        registry.widget_for_view(view).mount()

    def send(*events):
        for event in events:
            if isinstance(event, ControlKey):
                event = key(event)
            dispatcher.dispatch(event)

    return SimpleNamespace(
        dispatcher=dispatcher,
        context=dispatcher.context,
        registry=registry,
        messages=messages,
        refreshes=refreshes,
        quits=quits,
        send=send,
        services=services,
        images=images,
    )
