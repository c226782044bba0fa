from __future__ import annotations

from collections.abc import Awaitable, Callable

import structlog

from opentolk.core.errors import PipelineCycleError, PipelineTargetNotFoundError, PluginError
from opentolk.core.registry import PluginRegistry
from opentolk.core.stream import ResultStream
from opentolk.schemas.manifest import PipelineConfig
from opentolk.schemas.result import Match, PluginResult

log = structlog.get_logger()

StepRunner = Callable[[Match, dict[str, str], tuple[str, ...]], Awaitable[PluginResult | ResultStream]]


async def run_pipeline(
    match: Match,
    config: PipelineConfig,
    registry: PluginRegistry,
    run_step: StepRunner,
    chain: tuple[str, ...] = (),
) -> PluginResult:
    """Feed the text through each step's plugin in order.

    Steps may name disabled plugins. A streaming step is drained before the next
    step starts. The first failing step aborts the pipeline.
    """
    pipeline_id = match.plugin.id
    chain = (*chain, pipeline_id)
    current = match.input

    for index, step in enumerate(config.steps):
        plugin = registry.get_enabled(step.plugin) or registry.get(step.plugin)
        if plugin is None:
            exc = PipelineTargetNotFoundError(step.plugin, pipeline_id)
            exc.pipeline_id = pipeline_id
            raise exc
        if plugin.id in chain:
            exc = PipelineCycleError(step.plugin, pipeline_id)
            exc.pipeline_id = pipeline_id
            raise exc

        log.debug("pipeline.step", pipeline_id=pipeline_id, step=index, plugin_id=plugin.id)
        try:
            result = await run_step(Match.synthetic(plugin, current), step.settings_override, chain)
            if isinstance(result, ResultStream):
                current = await result.collect()
            else:
                current = result.text
        except PluginError as exc:
            if exc.pipeline_id is None:
                exc.pipeline_id = pipeline_id
            log.warning("pipeline.step_failed", pipeline_id=pipeline_id, step=index,
                        plugin_id=plugin.id, kind=exc.kind)
            raise

    log.info("pipeline.done", pipeline_id=pipeline_id, steps=len(config.steps))
    return PluginResult(text=current, output_mode=match.plugin.manifest.output_mode)
