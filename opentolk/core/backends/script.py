from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from pathlib import Path

import structlog

from opentolk.core.errors import MissingConfigError, ProcessFailedError
from opentolk.core.output import parse_output
from opentolk.core.process import ENV_PREFIX, run_process, settings_environment
from opentolk.schemas.manifest import ScriptConfig
from opentolk.schemas.result import Match, PluginResult

log = structlog.get_logger()

INTERPRETERS = {
    ".sh": "bash",
    ".py": "python3",
    ".js": "node",
    ".rb": "ruby",
}


def infer_interpreter(command: str) -> str | None:
    return INTERPRETERS.get(Path(command).suffix.lower())


def script_environment(match: Match, data_dir: Path, settings: Mapping[str, str]) -> dict[str, str]:
    env = {
        f"{ENV_PREFIX}INPUT": match.input,
        f"{ENV_PREFIX}RAW_INPUT": match.raw_input,
        f"{ENV_PREFIX}TRIGGER": match.trigger_word,
        f"{ENV_PREFIX}PLUGIN_DIR": str(match.plugin.directory),
        f"{ENV_PREFIX}DATA_DIR": str(data_dir),
    }
    env.update(settings_environment(settings))
    return env


async def run_script(
    match: Match,
    config: ScriptConfig,
    settings: Mapping[str, str],
    data_dir: Path,
    default_timeout: float,
) -> PluginResult:
    plugin = match.plugin
    timeout = config.timeout or default_timeout
    temp_path: Path | None = None

    if config.inline is not None:
        fd, name = tempfile.mkstemp(prefix="opentolk-", suffix=".sh")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(config.inline)
        temp_path = Path(name)
        temp_path.chmod(0o755)
        script_path = temp_path
        interpreter = config.interpreter or "bash"
    elif config.command:
        script_path = plugin.directory / config.command
        if not script_path.is_file():
            raise MissingConfigError(f"command ({config.command})", plugin.id)
        interpreter = config.interpreter or infer_interpreter(config.command)
    else:
        raise MissingConfigError("command", plugin.id)

    argv = [interpreter, str(script_path)] if interpreter else [str(script_path)]

    try:
        output = await run_process(
            argv,
            timeout=timeout,
            cwd=plugin.directory,
            env=script_environment(match, data_dir, settings),
            plugin_id=plugin.id,
        )
    finally:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)

    if output.returncode != 0:
        log.warning("runner.script_failed", plugin_id=plugin.id, code=output.returncode)
        raise ProcessFailedError(output.returncode, output.stderr, plugin.id)

    log.info("runner.script_ok", plugin_id=plugin.id, length=len(output.stdout))
    return parse_output(output.stdout, plugin.manifest.output_mode)
