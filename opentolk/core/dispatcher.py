from __future__ import annotations

from typing import assert_never

import structlog

from opentolk.core.errors import DeliveryError
from opentolk.core.sinks import DeliverySink
from opentolk.core.stream import ResultStream
from opentolk.schemas.manifest import OutputFormat, OutputMode
from opentolk.schemas.result import LoadedPlugin, PluginResult

log = structlog.get_logger()


class OutputDispatcher:
    """Routes a run result to the delivery sink methods its output policy names."""

    def __init__(self, sink: DeliverySink):
        self._sink = sink

    async def deliver(self, result: PluginResult | ResultStream, plugin: LoadedPlugin) -> None:
        manifest = plugin.manifest
        fmt = manifest.output_format

        if isinstance(result, ResultStream):
            # Streams always go to a live conversation view
            log.info("output.stream", plugin_id=plugin.id)
            await self._sink.open_conversation(plugin, fmt, stream=result)
            return

        mode = result.output_mode or manifest.output_mode
        try:
            await self.deliver_mode(mode, result.text, plugin, fmt)
        except DeliveryError as exc:
            fallback = manifest.output.fallback if manifest.output else None
            if fallback is None or fallback == mode:
                raise
            log.warning("output.fallback", plugin_id=plugin.id, mode=mode.value,
                        fallback=fallback.value, error=str(exc))
            await self.deliver_mode(fallback, result.text, plugin, fmt)

        if manifest.output:
            for also in manifest.output.also:
                await self.deliver_mode(also, result.text, plugin, fmt)

    async def deliver_mode(
        self, mode: OutputMode, text: str, plugin: LoadedPlugin, fmt: OutputFormat
    ) -> None:
        log.debug("output.deliver", plugin_id=plugin.id, mode=mode.value)
        name = plugin.manifest.name
        if mode is OutputMode.paste:
            await self._sink.paste(text)
        elif mode is OutputMode.clipboard:
            await self._sink.copy(text)
        elif mode is OutputMode.notify:
            await self._sink.notify(name, text)
        elif mode is OutputMode.speak:
            await self._sink.speak(text)
        elif mode is OutputMode.panel:
            await self._sink.show_panel(name, text, fmt)
        elif mode is OutputMode.store:
            await self._sink.store(text)
        elif mode is OutputMode.silent:
            pass
        elif mode is OutputMode.reply:
            await self._sink.open_conversation(plugin, fmt, initial_text=text)
        else:
            assert_never(mode)
