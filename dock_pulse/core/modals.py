"""Modal widgets: ephemeral prompts that own the input stream until answered.

A modal runs its own blocking loop over an EventSource and ends with an
InteractionResult. Escape cancels; Enter submits whatever has been typed.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

from dock_pulse.core.events import ControlKey, EventSource, InputEvent
from dock_pulse.core.widgets import Entity, Widget


@dataclass(frozen=True)
class InteractionResult:
    """Outcome of a modal interaction. ``text`` is meaningless when canceled."""
    text: str
    canceled: bool

    @classmethod
    def cancel(cls, text: str = "") -> InteractionResult:
        return cls(text=text, canceled=True)


class ModalWidget(Widget):
    """A widget that can be given exclusive ownership of the input stream."""

    def run_interaction(self, events: EventSource) -> InteractionResult:
        raise NotImplementedError

    def render_text(self) -> str:
        return self.name


class AskForConfirmation(ModalWidget):
    """Single-line text prompt.

    Used for yes/no confirmations, numbers and free text alike; the caller
    decides how to interpret the answer.
    """

    NAME = "prompt"

    def __init__(self, prompt: str, initial: str = "", name: str | None = None):
        super().__init__(name or self.NAME)
        self.prompt = prompt
        self._lock = threading.Lock()
        self._text = initial

    @property
    def text(self) -> str:
        with self._lock:
            return self._text

    def run_interaction(self, events: EventSource) -> InteractionResult:
        while True:
            event = events.next_event()
            result = self.feed(event)
            events.event_handled(event)
            if result is not None:
                return result

    def feed(self, event: InputEvent) -> InteractionResult | None:
        """Apply one event; return the result once the prompt is answered."""
        with self._lock:
            if event.char is not None:
                self._text += event.char
            elif event.key is ControlKey.BACKSPACE:
                self._text = self._text[:-1]
            elif event.key is ControlKey.CONFIRM:
                return InteractionResult(text=self._text, canceled=False)
            elif event.key is ControlKey.CANCEL:
                return InteractionResult.cancel(self._text)
        return None

    def render_text(self) -> str:
        return f"{self.prompt} {self.text}"


class ImageRunWidget(AskForConfirmation):
    """Prompt for the arguments of a container run from an image."""

    NAME = "image-run"

    def __init__(self, image: Entity):
        super().__init__(
            f"docker run {image.name}",
            name=self.NAME,
        )
        self.image = image
