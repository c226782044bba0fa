from __future__ import annotations

from collections.abc import Mapping

import structlog

from opentolk.connectors.llm import BaseLLMClient, ChatMessage
from opentolk.core.errors import AIRequestError, MissingConfigError
from opentolk.core.session_manager import SessionManager
from opentolk.core.stream import ResultStream
from opentolk.core.templates import resolve_template
from opentolk.core.tool_loop import run_tool_loop
from opentolk.core.tool_runner import ToolRunner
from opentolk.schemas.manifest import AIConfig
from opentolk.schemas.result import Match, PluginResult

log = structlog.get_logger()


def resolve_system_prompt(match: Match, config: AIConfig, settings: Mapping[str, str]) -> str:
    plugin = match.plugin
    if config.system_prompt_file:
        path = plugin.directory / config.system_prompt_file
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError:
            raise MissingConfigError(
                f"system_prompt_file ({config.system_prompt_file})", plugin.id
            ) from None
    elif config.system_prompt is not None:
        raw = config.system_prompt
    else:
        raise MissingConfigError("system_prompt", plugin.id)
    return resolve_template(raw, match.input, settings)


async def run_ai(
    match: Match,
    config: AIConfig,
    settings: Mapping[str, str],
    llm: BaseLLMClient | None,
    sessions: SessionManager | None,
    tool_runner: ToolRunner,
    max_tool_rounds: int,
    history: list[ChatMessage] | None = None,
) -> PluginResult | ResultStream:
    plugin = match.plugin
    if llm is None:
        raise MissingConfigError("ai provider api key", plugin.id)

    system_prompt = resolve_system_prompt(match, config, settings)
    conversational = config.conversational and sessions is not None

    messages = [ChatMessage(role="system", content=system_prompt)]
    if conversational:
        messages.extend(await sessions.messages(plugin.id))
    elif history:
        messages.extend(history)

    user_message = ChatMessage(role="user", content=match.input)
    messages.append(user_message)
    if conversational:
        await sessions.append(plugin.id, user_message)

    async def remember(text: str) -> None:
        if conversational:
            await sessions.append(plugin.id, ChatMessage(role="assistant", content=text))

    mode = plugin.manifest.output_mode

    if config.tools:
        text, answered = await run_tool_loop(
            llm, messages, config, plugin, settings, tool_runner, max_tool_rounds
        )
        if answered:
            await remember(text)
        return PluginResult(text=text, output_mode=mode)

    if config.should_stream:
        log.info("runner.ai_stream", plugin_id=plugin.id, history=len(messages) - 2)
        deltas = llm.chat_stream(
            messages,
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )
        return ResultStream(deltas, plugin.id, on_complete=remember)

    try:
        text = await llm.chat(
            messages,
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )
    except Exception as exc:
        log.exception("runner.ai_failed", plugin_id=plugin.id)
        raise AIRequestError(str(exc), plugin.id) from exc

    await remember(text)
    log.info("runner.ai_ok", plugin_id=plugin.id, length=len(text))
    return PluginResult(text=text, output_mode=mode)
