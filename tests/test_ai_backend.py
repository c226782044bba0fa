"""Tests for the AI backend: prompts, streaming and conversation memory."""

import pytest
from conftest import FakeLLM

from opentolk.connectors.llm import ChatMessage, LLMResponse, ToolCall
from opentolk.core.backends.ai import run_ai
from opentolk.core.errors import AIRequestError, MissingConfigError
from opentolk.core.session_manager import SessionManager
from opentolk.core.stream import ResultStream, StreamDone, TextDelta
from opentolk.core.tool_loop import LIMIT_REACHED_MESSAGE
from opentolk.core.tool_runner import ToolRunner
from opentolk.schemas.result import Match


async def _run(plugin, llm, text="hi", settings=None, sessions=None, history=None):
    return await run_ai(
        Match.synthetic(plugin, text), plugin.manifest.execution, settings or {},
        llm, sessions, ToolRunner(), 10, history=history,
    )


@pytest.mark.asyncio
async def test_system_prompt_templated(make_plugin):
    plugin = make_plugin("t", execution={
        "type": "ai", "system_prompt": "Translate to {{settings.lang}}.", "temperature": 0.2,
    })
    llm = FakeLLM(replies=["Bonjour"])

    result = await _run(plugin, llm, "hello", {"lang": "French"})

    assert result.text == "Bonjour"
    messages = llm.calls[0]["messages"]
    assert messages[0] == ChatMessage(role="system", content="Translate to French.")
    assert messages[-1] == ChatMessage(role="user", content="hello")
    assert llm.calls[0]["temperature"] == 0.2


@pytest.mark.asyncio
async def test_system_prompt_file(make_plugin):
    plugin = make_plugin("f", execution={"type": "ai", "system_prompt_file": "prompt.md"})
    (plugin.directory / "prompt.md").write_text("Answer: {{input}}")
    llm = FakeLLM(replies=["ok"])

    await _run(plugin, llm, "why")

    assert llm.calls[0]["messages"][0].content == "Answer: why"


@pytest.mark.asyncio
async def test_missing_prompt_file(make_plugin):
    plugin = make_plugin("f", execution={"type": "ai", "system_prompt_file": "absent.md"})
    with pytest.raises(MissingConfigError):
        await _run(plugin, FakeLLM())


@pytest.mark.asyncio
async def test_no_provider_is_missing_config(make_plugin):
    plugin = make_plugin("a", execution={"type": "ai", "system_prompt": "x"})
    with pytest.raises(MissingConfigError):
        await _run(plugin, None)


@pytest.mark.asyncio
async def test_provider_failure(make_plugin):
    plugin = make_plugin("a", execution={"type": "ai", "system_prompt": "x"})
    with pytest.raises(AIRequestError):
        await _run(plugin, FakeLLM(error=RuntimeError("500")))


@pytest.mark.asyncio
async def test_history_passed_for_follow_up(make_plugin):
    plugin = make_plugin("a", execution={"type": "ai", "system_prompt": "x"})
    llm = FakeLLM(replies=["again"])
    history = [ChatMessage(role="user", content="q1"), ChatMessage(role="assistant", content="a1")]

    await _run(plugin, llm, "q2", history=history)

    assert [m.content for m in llm.calls[0]["messages"]] == ["x", "q1", "a1", "q2"]


@pytest.mark.asyncio
async def test_stream_events_end_with_done(make_plugin):
    plugin = make_plugin("s", execution={"type": "ai", "system_prompt": "x", "streaming": True})
    llm = FakeLLM(chunks=["Hel", "lo", " there"])

    stream = await _run(plugin, llm)

    assert isinstance(stream, ResultStream)
    events = [event async for event in stream]
    assert events == [TextDelta("Hel"), TextDelta("lo"), TextDelta(" there"),
                      StreamDone("Hello there")]


@pytest.mark.asyncio
async def test_stream_consumed_once(make_plugin):
    plugin = make_plugin("s", execution={"type": "ai", "system_prompt": "x", "streaming": True})
    stream = await _run(plugin, FakeLLM(chunks=["a"]))

    assert await stream.collect() == "a"
    with pytest.raises(RuntimeError):
        await stream.collect()


@pytest.mark.asyncio
async def test_stream_failure_becomes_ai_error(make_plugin):
    plugin = make_plugin("s", execution={"type": "ai", "system_prompt": "x", "streaming": True})
    stream = await _run(plugin, FakeLLM(chunks=["partial"], error=RuntimeError("reset")))

    with pytest.raises(AIRequestError):
        await stream.collect()


@pytest.mark.asyncio
async def test_conversational_history_kept_per_plugin(make_plugin):
    plugin = make_plugin("chat", execution={
        "type": "ai", "system_prompt": "x", "conversational": True, "streaming": False,
    })
    sessions = SessionManager(ttl_seconds=600, max_messages=50)
    llm = FakeLLM(replies=["first answer", "second answer"])

    await _run(plugin, llm, "first", sessions=sessions)
    await _run(plugin, llm, "second", sessions=sessions)

    assert [m.content for m in llm.calls[1]["messages"]] == [
        "x", "first", "first answer", "second",
    ]
    stored = await sessions.messages("chat")
    assert [m.role for m in stored] == ["user", "assistant", "user", "assistant"]


@pytest.mark.asyncio
async def test_conversational_stream_remembers_reply(make_plugin):
    plugin = make_plugin("chat", execution={
        "type": "ai", "system_prompt": "x", "conversational": True,
    })
    sessions = SessionManager(ttl_seconds=600, max_messages=50)

    stream = await _run(plugin, FakeLLM(chunks=["streamed"]), "hello", sessions=sessions)
    await stream.collect()

    stored = await sessions.messages("chat")
    assert [(m.role, m.content) for m in stored] == [("user", "hello"), ("assistant", "streamed")]


@pytest.mark.asyncio
async def test_tool_limit_notice_not_remembered(make_plugin, sink):
    plugin = make_plugin("agent", execution={
        "type": "ai", "system_prompt": "x", "conversational": True,
        "tools": [{"name": "paste", "type": "builtin"}],
    })
    sessions = SessionManager(ttl_seconds=600, max_messages=50)
    llm = FakeLLM(tool_responses=[
        LLMResponse(tool_calls=[ToolCall(id=f"c{i}", name="paste", arguments={"text": "t"})])
        for i in range(10)
    ])

    result = await run_ai(
        Match.synthetic(plugin, "go"), plugin.manifest.execution, {},
        llm, sessions, ToolRunner(sink=sink), 10,
    )

    assert result.text == LIMIT_REACHED_MESSAGE
    stored = await sessions.messages("agent")
    assert [(m.role, m.content) for m in stored] == [("user", "go")]
