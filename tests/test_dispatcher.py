"""Tests for output delivery."""

import pytest
from conftest import FakeLLM

from opentolk.core.dispatcher import OutputDispatcher
from opentolk.core.errors import DeliveryError
from opentolk.core.sinks import RecordingSink
from opentolk.core.stream import ResultStream
from opentolk.schemas.manifest import OutputFormat, OutputMode
from opentolk.schemas.result import PluginResult


class FailingPasteSink(RecordingSink):
    async def paste(self, text: str) -> None:
        raise DeliveryError("no focused application")


@pytest.mark.asyncio
async def test_result_mode_overrides_manifest(make_plugin, sink):
    plugin = make_plugin("p", output={"mode": "panel"})
    await OutputDispatcher(sink).deliver(PluginResult("hi", OutputMode.notify), plugin)

    assert len(sink.actions) == 1
    assert sink.actions[0].mode is OutputMode.notify
    assert sink.actions[0].title == "p"


@pytest.mark.asyncio
async def test_manifest_mode_and_format(make_plugin, sink):
    plugin = make_plugin("p", name="Notes", output={"mode": "panel", "format": "markdown"})
    await OutputDispatcher(sink).deliver(PluginResult("**hi**"), plugin)

    action = sink.actions[0]
    assert action.mode is OutputMode.panel
    assert action.title == "Notes"
    assert action.format is OutputFormat.markdown


@pytest.mark.asyncio
async def test_also_modes_delivered_after_primary(make_plugin, sink):
    plugin = make_plugin("p", output={"mode": "paste", "also": ["clipboard", "store"]})
    await OutputDispatcher(sink).deliver(PluginResult("hi"), plugin)

    assert [a.mode for a in sink.actions] == [OutputMode.paste, OutputMode.clipboard,
                                              OutputMode.store]
    assert sink.history == ["hi"]
    assert await sink.read_clipboard() == "hi"


@pytest.mark.asyncio
async def test_fallback_used_when_primary_fails(make_plugin):
    sink = FailingPasteSink()
    plugin = make_plugin("p", output={"mode": "paste", "fallback": "clipboard"})
    await OutputDispatcher(sink).deliver(PluginResult("hi"), plugin)

    assert [a.mode for a in sink.actions] == [OutputMode.clipboard]


@pytest.mark.asyncio
async def test_failure_without_fallback_propagates(make_plugin):
    plugin = make_plugin("p")
    with pytest.raises(DeliveryError):
        await OutputDispatcher(FailingPasteSink()).deliver(PluginResult("hi"), plugin)


@pytest.mark.asyncio
async def test_silent_delivers_nothing(make_plugin, sink):
    plugin = make_plugin("p", output={"mode": "silent"})
    await OutputDispatcher(sink).deliver(PluginResult("hi"), plugin)
    assert sink.actions == []


@pytest.mark.asyncio
async def test_reply_opens_conversation(make_plugin, sink):
    plugin = make_plugin("chat", name="Chat", output={"mode": "reply"})
    await OutputDispatcher(sink).deliver(PluginResult("hello"), plugin)

    action = sink.actions[0]
    assert action.mode is OutputMode.reply
    assert action.plugin_id == "chat"
    assert action.text == "hello"


@pytest.mark.asyncio
async def test_stream_goes_to_conversation_unconsumed(make_plugin, sink):
    plugin = make_plugin("chat", output={"mode": "paste"})

    async def deltas():
        yield "a"

    stream = ResultStream(deltas(), "chat")
    await OutputDispatcher(sink).deliver(stream, plugin)

    assert sink.stream is stream
    assert sink.actions == []
    assert await stream.collect() == "a"
