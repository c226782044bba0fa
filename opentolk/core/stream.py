from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass

import structlog

from opentolk.core.errors import AIRequestError

log = structlog.get_logger()


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class StreamDone:
    text: str  # the complete, concatenated text


StreamEvent = TextDelta | StreamDone


class ResultStream:
    """A live AI response: a sequence of text deltas closed by a StreamDone event.

    The stream can be iterated exactly once, either event by event (a live
    conversation view) or drained with :meth:`collect` (pipelines, tool calls).
    ``on_complete`` runs with the full text once the deltas are exhausted.
    """

    def __init__(
        self,
        deltas: AsyncIterator[str],
        plugin_id: str,
        on_complete: Callable[[str], Awaitable[None]] | None = None,
    ) -> None:
        self._deltas = deltas
        self.plugin_id = plugin_id
        self._on_complete = on_complete
        self._consumed = False

    async def __aiter__(self) -> AsyncIterator[StreamEvent]:
        if self._consumed:
            raise RuntimeError("ResultStream can only be consumed once")
        self._consumed = True

        parts: list[str] = []
        try:
            async for delta in self._deltas:
                parts.append(delta)
                yield TextDelta(delta)
        except AIRequestError:
            raise
        except Exception as exc:
            log.exception("stream.failed", plugin_id=self.plugin_id)
            raise AIRequestError(str(exc), self.plugin_id) from exc
        finally:
            await self.aclose()

        text = "".join(parts)
        if self._on_complete is not None:
            await self._on_complete(text)
        log.debug("stream.done", plugin_id=self.plugin_id, length=len(text))
        yield StreamDone(text)

    async def collect(self) -> str:
        """Drain the stream and return the concatenated text."""
        text = ""
        async for event in self:
            if isinstance(event, StreamDone):
                text = event.text
        return text

    async def aclose(self) -> None:
        """Stop the underlying model call."""
        aclose = getattr(self._deltas, "aclose", None)
        if aclose is not None:
            await aclose()
