"""Backend collaborator: the narrow contract the dashboard needs from Docker.

Architecture:
    - Backend: Protocol the screen handlers and list widgets depend on
    - DockerCliBackend: implementation driving the ``docker`` CLI via subprocess,
      one instance per entity kind (services, images)
    - ProcessLogStream: closable line iterator over a ``docker ... logs -f`` process

Every failure surfaces as BackendError; nothing here ends the process.
"""

from __future__ import annotations

import json
import shlex
import subprocess
from typing import Any, Iterator, Protocol

from dock_pulse.core.widgets import Entity, EntityKind
from dock_pulse.utils.config import BACKEND_TIMEOUT, DOCKER_BINARY
from dock_pulse.utils.logger import get_logger

log = get_logger(__name__)


class BackendError(Exception):
    """A backend call failed; the message is meant for the user."""


class Backend(Protocol):
    kind: EntityKind

    def list_entities(self) -> list[Entity]: ...

    def remove_entity(self, entity_id: str, force: bool = False) -> None: ...

    def scale_entity(self, entity_id: str, replicas: int) -> None: ...

    def inspect_entity(self, entity_id: str) -> Any: ...

    def entity_history(self, entity_id: str) -> Any: ...

    def entity_by_id(self, entity_id: str) -> Entity: ...

    def run_entity(self, entity: Entity, args: str) -> None: ...

    def stream_logs(self, entity_id: str) -> ProcessLogStream: ...

    def entity_tasks(self, entity_id: str) -> list[Entity]: ...

    def remove_dangling(self) -> str: ...


class ProcessLogStream:
    """Iterate the stdout lines of a running process; ``close`` stops it."""

    def __init__(self, process: subprocess.Popen):
        self._process = process

    def __iter__(self) -> Iterator[str]:
        if self._process.stdout is None:
            raise BackendError("log process was started without an output pipe")
        yield from self._process.stdout

    def close(self) -> None:
        if self._process.poll() is None:
            self._process.terminate()
            try:
                self._process.wait(timeout=2)
            except subprocess.TimeoutExpired:
                self._process.kill()
        if self._process.stdout is not None:
            self._process.stdout.close()


class DockerCliBackend:
    """Backend for one entity kind, implemented on top of the docker CLI."""

    def __init__(
        self,
        kind: EntityKind,
        binary: str = DOCKER_BINARY,
        timeout: float = BACKEND_TIMEOUT,
    ):
        if kind not in (EntityKind.SERVICE, EntityKind.IMAGE):
            raise ValueError(f"unsupported entity kind: {kind.value}")
        self.kind = kind
        self._binary = binary
        self._timeout = timeout

    # ── Plumbing ──

    def _run(self, *args: str) -> str:
        cmd = [self._binary, *args]
        log.debug("Running %s", shlex.join(cmd))
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=self._timeout, check=False
            )
        except subprocess.TimeoutExpired:
            raise BackendError(f"'{shlex.join(cmd)}' timed out after {self._timeout:.0f}s") from None
        except OSError as e:
            raise BackendError(f"cannot run {self._binary}: {e}") from e
        if result.returncode != 0:
            detail = result.stderr.strip() or f"exit status {result.returncode}"
            raise BackendError(detail)
        return result.stdout

    def _json_lines(self, *args: str) -> list[dict]:
        out = self._run(*args, "--format", "{{json .}}")
        try:
            return [json.loads(line) for line in out.splitlines() if line.strip()]
        except json.JSONDecodeError as e:
            raise BackendError(f"unexpected docker output: {e}") from e

    def _require(self, kind: EntityKind, operation: str) -> None:
        if self.kind is not kind:
            raise BackendError(f"cannot {operation} {self.kind.value}s")

    # ── Contract ──

    def list_entities(self) -> list[Entity]:
        if self.kind is EntityKind.SERVICE:
            return [
                Entity(
                    id=row.get("ID", ""),
                    name=row.get("Name", ""),
                    kind=EntityKind.SERVICE,
                    fields={
                        "Mode": row.get("Mode", ""),
                        "Replicas": row.get("Replicas", ""),
                        "Image": row.get("Image", ""),
                        "Ports": row.get("Ports", ""),
                    },
                )
                for row in self._json_lines("service", "ls")
            ]
        return [
            Entity(
                id=row.get("ID", ""),
                name=f"{row.get('Repository', '<none>')}:{row.get('Tag', '<none>')}",
                kind=EntityKind.IMAGE,
                fields={
                    "Created": row.get("CreatedSince", ""),
                    "Size": row.get("Size", ""),
                },
            )
            for row in self._json_lines("image", "ls")
        ]

    def remove_entity(self, entity_id: str, force: bool = False) -> None:
        if self.kind is EntityKind.SERVICE:
            self._run("service", "rm", entity_id)
        elif force:
            self._run("image", "rm", "--force", entity_id)
        else:
            self._run("image", "rm", entity_id)
        log.info("Removed %s %s (force=%s)", self.kind.value, entity_id, force)

    def scale_entity(self, entity_id: str, replicas: int) -> None:
        self._require(EntityKind.SERVICE, "scale")
        if replicas < 0:
            raise BackendError(f"invalid number of replicas: {replicas}")
        self._run("service", "scale", "--detach", f"{entity_id}={replicas}")
        log.info("Scaled service %s to %d replicas", entity_id, replicas)

    def inspect_entity(self, entity_id: str) -> Any:
        out = self._run("inspect", "--type", self.kind.value, entity_id)
        try:
            documents = json.loads(out)
        except json.JSONDecodeError as e:
            raise BackendError(f"unexpected docker output: {e}") from e
        if not documents:
            raise BackendError(f"no such {self.kind.value}: {entity_id}")
        return documents[0]

    def entity_history(self, entity_id: str) -> Any:
        self._require(EntityKind.IMAGE, "show the history of")
        return self._json_lines("image", "history", "--no-trunc", entity_id)

    def entity_by_id(self, entity_id: str) -> Entity:
        for entity in self.list_entities():
            if entity.id == entity_id or entity.id.startswith(entity_id):
                return entity
        raise BackendError(f"no such {self.kind.value}: {entity_id}")

    def run_entity(self, entity: Entity, args: str) -> None:
        self._require(EntityKind.IMAGE, "run")
        try:
            extra = shlex.split(args)
        except ValueError as e:
            raise BackendError(f"invalid run arguments: {e}") from e
        self._run("run", "--detach", entity.name, *extra)
        log.info("Started container from %s %s", entity.name, args)

    def stream_logs(self, entity_id: str) -> ProcessLogStream:
        self._require(EntityKind.SERVICE, "stream logs of")
        cmd = [self._binary, "service", "logs", "--follow", "--tail", "200", entity_id]
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except OSError as e:
            raise BackendError(f"cannot run {self._binary}: {e}") from e
        return ProcessLogStream(process)

    def entity_tasks(self, entity_id: str) -> list[Entity]:
        self._require(EntityKind.SERVICE, "list tasks of")
        return [
            Entity(
                id=row.get("ID", ""),
                name=row.get("Name", ""),
                kind=EntityKind.TASK,
                fields={
                    "Node": row.get("Node", ""),
                    "Desired": row.get("DesiredState", ""),
                    "Current": row.get("CurrentState", ""),
                    "Error": row.get("Error", ""),
                },
            )
            for row in self._json_lines("service", "ps", entity_id)
        ]

    def remove_dangling(self) -> str:
        self._require(EntityKind.IMAGE, "prune")
        return self._run("image", "prune", "--force").strip()
