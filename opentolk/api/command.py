from __future__ import annotations

import json
from collections.abc import AsyncIterator

import structlog
from fastapi import APIRouter, HTTPException, status
from fastapi.responses import StreamingResponse

from opentolk.core.errors import DeliveryError, PluginError
from opentolk.core.sinks import RecordingSink
from opentolk.core.stream import ResultStream, TextDelta
from opentolk.dependencies import Engine, EngineDep
from opentolk.schemas.command import (
    ClearSessionRequest,
    CommandRequest,
    CommandResponse,
    ErrorInfo,
    ReplyRequest,
)
from opentolk.schemas.result import Match

log = structlog.get_logger()

router = APIRouter()

NDJSON = "application/x-ndjson"


def _event(payload: dict) -> str:
    return json.dumps(payload, ensure_ascii=False) + "\n"


async def _stream_events(stream: ResultStream, raw_input: str) -> AsyncIterator[str]:
    try:
        async for event in stream:
            if isinstance(event, TextDelta):
                yield _event({"type": "delta", "text": event.text})
            else:
                yield _event({"type": "done", "text": event.text})
    except PluginError as exc:
        log.warning("command.stream_failed", plugin_id=stream.plugin_id, error=exc.message)
        yield _event({"type": "error", "kind": exc.kind, "message": exc.message})
        yield _event({"type": "paste", "text": raw_input})


def _error_info(exc: PluginError, match: Match) -> ErrorInfo:
    return ErrorInfo(
        kind=exc.kind,
        message=exc.message,
        plugin_id=exc.plugin_id or match.plugin.id,
        pipeline_id=exc.pipeline_id,
    )


async def _run_match(engine: Engine, match: Match, sink: RecordingSink):
    plugin = match.plugin
    executor = engine.executor(sink)
    dispatcher = engine.dispatcher(sink)

    try:
        result = await executor.run(match)
        await dispatcher.deliver(result, plugin)
    except PluginError as exc:
        # The dictation is never lost: the raw text is pasted instead
        log.warning("command.plugin_failed", plugin_id=plugin.id, kind=exc.kind, error=exc.message)
        await sink.paste(match.raw_input)
        return CommandResponse(
            matched=True,
            plugin_id=plugin.id,
            actions=sink.actions,
            error=_error_info(exc, match),
        )
    except DeliveryError as exc:
        log.warning("command.delivery_failed", plugin_id=plugin.id, error=str(exc))
        return CommandResponse(
            matched=True,
            plugin_id=plugin.id,
            actions=sink.actions,
            error=ErrorInfo(kind="delivery_failed", message=str(exc), plugin_id=plugin.id),
        )

    if sink.stream is not None:
        return StreamingResponse(
            _stream_events(sink.stream, match.raw_input),
            media_type=NDJSON,
            headers={"X-Plugin-Id": plugin.id},
        )

    log.info("command.delivered", plugin_id=plugin.id, actions=len(sink.actions))
    return CommandResponse(matched=True, plugin_id=plugin.id, actions=sink.actions)


@router.post("", response_model=CommandResponse)
async def handle_command(body: CommandRequest, engine: EngineDep):
    sink = RecordingSink(clipboard=body.clipboard)

    match = await engine.router.route(body.text)
    if match is None:
        await sink.paste(body.text)
        return CommandResponse(matched=False, actions=sink.actions)

    return await _run_match(engine, match, sink)


@router.post("/reply", response_model=CommandResponse)
async def reply(body: ReplyRequest, engine: EngineDep):
    plugin = engine.registry.get_enabled(body.plugin_id)
    if plugin is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Plugin not found: {body.plugin_id}")

    sink = RecordingSink(clipboard=body.clipboard)
    return await _run_match(engine, Match.synthetic(plugin, body.text), sink)


@router.post("/session/clear")
async def clear_session(body: ClearSessionRequest, engine: EngineDep):
    await engine.sessions.clear(body.plugin_id)
    return {"status": "cleared"}
