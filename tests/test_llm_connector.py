"""Tests for provider message conversion and client selection."""

from opentolk.config import Settings
from opentolk.connectors.llm import (
    ChatMessage,
    ToolCall,
    _to_anthropic_messages,
    _to_openai_messages,
    create_llm_client,
)

CONVERSATION = [
    ChatMessage(role="system", content="be helpful"),
    ChatMessage(role="user", content="weather and news?"),
    ChatMessage(
        role="assistant",
        content="Checking.",
        tool_calls=[
            ToolCall(id="t1", name="web_search", arguments={"query": "weather"}),
            ToolCall(id="t2", name="web_search", arguments={"query": "news"}),
        ],
    ),
    ChatMessage(role="tool", content="sunny", tool_call_id="t1"),
    ChatMessage(role="tool", content="quiet day", tool_call_id="t2"),
]


def test_anthropic_messages_merge_tool_results():
    out = _to_anthropic_messages(CONVERSATION)

    assert [m["role"] for m in out] == ["user", "assistant", "user"]
    assert out[1]["content"][0] == {"type": "text", "text": "Checking."}
    assert out[1]["content"][1]["type"] == "tool_use"
    assert out[1]["content"][1]["input"] == {"query": "weather"}
    assert out[2]["content"] == [
        {"type": "tool_result", "tool_use_id": "t1", "content": "sunny"},
        {"type": "tool_result", "tool_use_id": "t2", "content": "quiet day"},
    ]


def test_openai_messages_keep_system_and_tool_roles():
    out = _to_openai_messages(CONVERSATION)

    assert [m["role"] for m in out] == ["system", "user", "assistant", "tool", "tool"]
    assert out[2]["tool_calls"][0]["function"] == {
        "name": "web_search", "arguments": '{"query": "weather"}',
    }
    assert out[4] == {"role": "tool", "tool_call_id": "t2", "content": "quiet day"}


def test_no_client_without_api_key():
    assert create_llm_client(Settings(llm_provider="openai", openai_api_key="")) is None
    assert create_llm_client(Settings(llm_provider="anthropic", anthropic_api_key="")) is None
