from __future__ import annotations

from abc import ABC, abstractmethod

import structlog

from opentolk.core.stream import ResultStream
from opentolk.schemas.command import DeliveryAction
from opentolk.schemas.manifest import OutputFormat, OutputMode
from opentolk.schemas.result import LoadedPlugin

log = structlog.get_logger()


class DeliverySink(ABC):
    """The desktop side of delivery: one method per output mode.

    Implementations raise ``DeliveryError`` when a delivery cannot be made.
    """

    @abstractmethod
    async def paste(self, text: str) -> None:
        """Paste into the active application."""

    @abstractmethod
    async def copy(self, text: str) -> None:
        """Put text on the clipboard."""

    @abstractmethod
    async def read_clipboard(self) -> str:
        """Return the current clipboard text."""

    @abstractmethod
    async def notify(self, title: str, body: str) -> None:
        """Show a system notification."""

    @abstractmethod
    async def speak(self, text: str) -> None:
        """Read text aloud."""

    @abstractmethod
    async def show_panel(self, title: str, text: str, format: OutputFormat) -> None:
        """Show a floating result panel."""

    @abstractmethod
    async def store(self, text: str) -> None:
        """Append to history without showing anything."""

    @abstractmethod
    async def open_conversation(
        self,
        plugin: LoadedPlugin,
        format: OutputFormat,
        initial_text: str | None = None,
        stream: ResultStream | None = None,
    ) -> None:
        """Open (or continue) a conversation panel, optionally rendering a live stream."""


class RecordingSink(DeliverySink):
    """Records deliveries as actions for a remote client to perform.

    Streams are kept aside for the caller to forward; nothing is consumed here.
    """

    def __init__(self, clipboard: str = "") -> None:
        self.actions: list[DeliveryAction] = []
        self.history: list[str] = []
        self.stream: ResultStream | None = None
        self._clipboard = clipboard

    def _record(self, mode: OutputMode, text: str, **extra) -> None:
        self.actions.append(DeliveryAction(mode=mode, text=text, **extra))
        log.debug("sink.recorded", mode=mode.value, length=len(text))

    async def paste(self, text: str) -> None:
        self._record(OutputMode.paste, text)

    async def copy(self, text: str) -> None:
        self._clipboard = text
        self._record(OutputMode.clipboard, text)

    async def read_clipboard(self) -> str:
        return self._clipboard

    async def notify(self, title: str, body: str) -> None:
        self._record(OutputMode.notify, body, title=title)

    async def speak(self, text: str) -> None:
        self._record(OutputMode.speak, text)

    async def show_panel(self, title: str, text: str, format: OutputFormat) -> None:
        self._record(OutputMode.panel, text, title=title, format=format)

    async def store(self, text: str) -> None:
        self.history.append(text)
        self._record(OutputMode.store, text)

    async def open_conversation(self, plugin, format, initial_text=None, stream=None) -> None:
        if stream is not None:
            self.stream = stream
            return
        self._record(
            OutputMode.reply, initial_text or "", title=plugin.manifest.name,
            format=format, plugin_id=plugin.id,
        )
