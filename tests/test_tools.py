"""Tests for builtin and script tools run through the ToolRunner."""

import json

import httpx
import pytest

from opentolk.connectors.llm import ToolCall
from opentolk.core.policy import PermissionStore
from opentolk.core.tool_runner import ToolRunner
from opentolk.tools.registry import get_tool


def _agent(make_plugin, tools, permissions=()):
    return make_plugin(
        "agent",
        execution={"type": "ai", "system_prompt": "x", "tools": tools},
        permissions=list(permissions),
    )


async def _call(runner, plugin, name, arguments=None, settings=None):
    tools = plugin.manifest.execution.tools
    call = ToolCall(id="c1", name=name, arguments=arguments or {})
    return (await runner.run(tools, call, plugin, settings or {})).content


def test_builtin_tools_registered():
    for name in ("web_search", "read_clipboard", "paste", "run_plugin", "gmail_check",
                 "gmail_read", "gmail_reply", "gmail_send", "gmail_archive"):
        assert get_tool(name) is not None, name


@pytest.mark.asyncio
async def test_script_tool_gets_arguments_and_settings(make_plugin):
    plugin = _agent(make_plugin, [{"name": "lookup", "type": "script", "command": "lookup.sh"}])
    (plugin.directory / "lookup.sh").write_text(
        'echo "$OPENTOLK_TOOL_NAME|$OPENTOLK_SETTINGS_REGION|$OPENTOLK_TOOL_ARGS|$(cat)"\n'
    )

    content = await _call(ToolRunner(), plugin, "lookup", {"q": "x"}, {"region": "eu"})

    args = json.dumps({"q": "x"})
    assert content == f"lookup|eu|{args}|{args}"


@pytest.mark.asyncio
async def test_failing_script_tool_returns_stderr(make_plugin):
    plugin = _agent(make_plugin, [{"name": "lookup", "type": "script", "command": "lookup.sh"}])
    (plugin.directory / "lookup.sh").write_text("echo 'no such record' >&2\nexit 1\n")

    assert await _call(ToolRunner(), plugin, "lookup") == "Error: no such record"


@pytest.mark.asyncio
async def test_script_tool_timeout_is_text(make_plugin):
    plugin = _agent(make_plugin, [{"name": "slow", "type": "script", "command": "slow.sh"}])
    (plugin.directory / "slow.sh").write_text("sleep 5\n")

    content = await _call(ToolRunner(timeout=1), plugin, "slow")

    assert content.startswith("Error: Plugin timed out")


@pytest.mark.asyncio
async def test_builtin_permission_checked(make_plugin, sink):
    plugin = _agent(make_plugin, [{"name": "read_clipboard", "type": "builtin"}],
                    permissions=["clipboard"])
    permissions = PermissionStore()
    runner = ToolRunner(sink=sink, permissions=permissions)

    assert await _call(runner, plugin, "read_clipboard") == "Error: Permission denied: clipboard"

    permissions.approve_all(plugin.manifest)
    assert await _call(runner, plugin, "read_clipboard") == "clipboard text"


@pytest.mark.asyncio
async def test_run_plugin_prefers_pinned_id(make_plugin):
    calls = []

    async def run_plugin(plugin_id, text):
        calls.append((plugin_id, text))
        return f"ran {plugin_id}"

    plugin = _agent(make_plugin, [
        {"name": "run_plugin", "type": "builtin", "config": {"plugin_id": "com.x.pinned"}},
    ])
    content = await _call(
        ToolRunner(run_plugin=run_plugin), plugin, "run_plugin",
        {"plugin_id": "com.x.other", "input": "hello"},
    )

    assert content == "ran com.x.pinned"
    assert calls == [("com.x.pinned", "hello")]


@pytest.mark.asyncio
async def test_gmail_not_connected(make_plugin):
    plugin = _agent(make_plugin, [{"name": "gmail_check", "type": "builtin"}])
    runner = ToolRunner(gmail_credentials=lambda: None)

    content = await _call(runner, plugin, "gmail_check")

    assert content.startswith("Error: Gmail is not connected")


@pytest.mark.asyncio
async def test_gmail_check_lists_messages(make_plugin, monkeypatch):
    import opentolk.tools.gmail as gmail_tools

    class FakeGmail:
        def __init__(self, credentials):
            pass

        def list_messages(self, query, max_results):
            return [{"subject": "Lunch", "from": "sam@example.com", "date": "Mon",
                     "snippet": "noon?", "message_id": "m1", "unread": True}]

    monkeypatch.setattr(gmail_tools, "GoogleGmailClient", FakeGmail)
    plugin = _agent(make_plugin, [{"name": "gmail_check", "type": "builtin"}])

    content = await _call(ToolRunner(gmail_credentials=lambda: object()), plugin, "gmail_check")

    assert "Found 1 email(s):" in content
    assert "**Lunch** [UNREAD]" in content
    assert "ID: m1" in content


@pytest.mark.asyncio
async def test_web_search_uses_instant_answers(make_plugin):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["q"] == "python"
        return httpx.Response(200, json={
            "Abstract": "Python is a language.",
            "RelatedTopics": [{"Text": "Python (programming)"}, {"Name": "group"}],
        })

    plugin = _agent(make_plugin, [{"name": "web_search", "type": "builtin"}])
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        content = await _call(ToolRunner(http_client=client), plugin, "web_search",
                              {"query": "python"})

    assert content == "Python is a language.\n\nPython (programming)"
