from pathlib import Path
from typing import Any

import pytest

from opentolk.connectors.llm import BaseLLMClient, LLMResponse
from opentolk.core.registry import PluginRegistry, SettingsStore
from opentolk.core.sinks import RecordingSink
from opentolk.schemas.manifest import PluginManifest
from opentolk.schemas.result import LoadedPlugin


class FakeLLM(BaseLLMClient):
    """Scripted LLM client: replies are popped in order, every call is recorded."""

    def __init__(
        self,
        replies: list[str] | None = None,
        tool_responses: list[LLMResponse] | None = None,
        chunks: list[str] | None = None,
        error: Exception | None = None,
    ):
        self.replies = list(replies or [])
        self.tool_responses = list(tool_responses or [])
        self.chunks = list(chunks or [])
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def chat(self, messages, model=None, temperature=None, max_tokens=None) -> str:
        self.calls.append({"kind": "chat", "messages": list(messages), "temperature": temperature,
                           "max_tokens": max_tokens})
        if self.error:
            raise self.error
        return self.replies.pop(0) if self.replies else ""

    async def chat_stream(self, messages, model=None, temperature=None, max_tokens=None):
        self.calls.append({"kind": "stream", "messages": list(messages)})
        for chunk in self.chunks:
            yield chunk
        if self.error:
            raise self.error

    async def chat_with_tools(
        self, messages, tools, model=None, temperature=None, max_tokens=None
    ) -> LLMResponse:
        self.calls.append({"kind": "tools", "messages": list(messages), "tools": list(tools)})
        if self.error:
            raise self.error
        if self.tool_responses:
            return self.tool_responses.pop(0)
        return LLMResponse(text="done")


def make_manifest(
    plugin_id: str,
    trigger: dict[str, Any] | None = None,
    execution: dict[str, Any] | None = None,
    **extra: Any,
) -> PluginManifest:
    return PluginManifest.model_validate(
        {
            "id": plugin_id,
            "name": extra.pop("name", plugin_id),
            "trigger": trigger or {"type": "keyword", "keywords": [plugin_id]},
            "execution": execution or {"type": "script", "inline": "echo ok"},
            **extra,
        }
    )


@pytest.fixture
def make_plugin(tmp_path: Path):
    def _make(plugin_id: str, trigger=None, execution=None, enabled: bool = True, **extra):
        directory = tmp_path / "plugins" / plugin_id
        directory.mkdir(parents=True, exist_ok=True)
        manifest = make_manifest(plugin_id, trigger, execution, **extra)
        return LoadedPlugin(manifest=manifest, directory=directory, enabled=enabled)

    return _make


@pytest.fixture
def registry(tmp_path: Path):
    return PluginRegistry(data_dir=tmp_path / "data")


@pytest.fixture
def settings_store():
    return SettingsStore()


@pytest.fixture
def sink():
    return RecordingSink(clipboard="clipboard text")


@pytest.fixture
def fake_llm():
    return FakeLLM()
