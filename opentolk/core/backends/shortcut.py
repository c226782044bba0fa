from __future__ import annotations

import structlog

from opentolk.core.errors import MissingConfigError, ProcessFailedError
from opentolk.core.output import parse_output
from opentolk.core.process import run_process
from opentolk.schemas.manifest import ShortcutConfig
from opentolk.schemas.result import Match, PluginResult

log = structlog.get_logger()


async def run_shortcut(
    match: Match,
    config: ShortcutConfig,
    binary: str,
    default_timeout: float,
) -> PluginResult:
    """Run a named OS automation, feeding the plugin input on stdin."""
    plugin = match.plugin
    if not config.shortcut_name.strip():
        raise MissingConfigError("shortcut_name", plugin.id)

    output = await run_process(
        [binary, "run", config.shortcut_name, "--input-path", "-"],
        timeout=config.timeout or default_timeout,
        stdin=match.input,
        plugin_id=plugin.id,
    )

    if output.returncode != 0:
        log.warning("runner.shortcut_failed", plugin_id=plugin.id, code=output.returncode)
        raise ProcessFailedError(output.returncode, output.stderr, plugin.id)

    return parse_output(output.stdout, plugin.manifest.output_mode)
