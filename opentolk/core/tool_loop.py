from __future__ import annotations

from collections.abc import Mapping

import structlog

from opentolk.connectors.llm import BaseLLMClient, ChatMessage
from opentolk.core.errors import AIRequestError
from opentolk.core.tool_runner import ToolRunner
from opentolk.schemas.manifest import AIConfig
from opentolk.schemas.result import LoadedPlugin

log = structlog.get_logger()

LIMIT_REACHED_MESSAGE = "Tool execution limit reached. Please try a simpler request."


async def run_tool_loop(
    llm: BaseLLMClient,
    messages: list[ChatMessage],
    config: AIConfig,
    plugin: LoadedPlugin,
    settings: Mapping[str, str],
    runner: ToolRunner,
    max_rounds: int,
) -> tuple[str, bool]:
    """Alternate model calls and tool executions until the model answers in text.

    Returns ``(text, answered)``. Tool calls within a round run one at a time, in
    the order the model listed them. After ``max_rounds`` model calls without a
    final answer the loop stops with ``(LIMIT_REACHED_MESSAGE, False)``.
    ``messages`` is extended in place.
    """
    definitions = runner.definitions(config.tools)

    for round_no in range(1, max_rounds + 1):
        try:
            response = await llm.chat_with_tools(
                messages,
                definitions,
                model=config.model,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
            )
        except Exception as exc:
            log.exception("tool_loop.llm_failed", plugin_id=plugin.id, round=round_no)
            raise AIRequestError(str(exc), plugin.id) from exc

        if not response.tool_calls:
            log.info("tool_loop.done", plugin_id=plugin.id, rounds=round_no)
            return response.text or "", True

        log.info(
            "tool_loop.round",
            plugin_id=plugin.id,
            round=round_no,
            tools=[tc.name for tc in response.tool_calls],
        )
        messages.append(
            ChatMessage(role="assistant", content=response.text, tool_calls=response.tool_calls)
        )
        for call in response.tool_calls:
            result = await runner.run(config.tools, call, plugin, settings)
            messages.append(ChatMessage(role="tool", content=result.content, tool_call_id=call.id))

    log.warning("tool_loop.limit_reached", plugin_id=plugin.id, rounds=max_rounds)
    return LIMIT_REACHED_MESSAGE, False
