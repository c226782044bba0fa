from __future__ import annotations

import asyncio
import os
import signal
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import structlog

from opentolk.core.errors import PluginTimeoutError, ProcessFailedError

log = structlog.get_logger()

ENV_PREFIX = "OPENTOLK_"


@dataclass
class ProcessOutput:
    returncode: int
    stdout: str
    stderr: str


def settings_environment(settings: Mapping[str, str]) -> dict[str, str]:
    return {f"{ENV_PREFIX}SETTINGS_{key.upper()}": value for key, value in settings.items()}


def _kill_group(proc: asyncio.subprocess.Process) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        try:
            proc.kill()
        except ProcessLookupError:
            pass


async def run_process(
    argv: list[str],
    timeout: float,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    stdin: str | None = None,
    plugin_id: str | None = None,
) -> ProcessOutput:
    """Run a subprocess to completion, killing it (and its children) on timeout.

    ``env`` entries are added on top of the current environment.
    """
    full_env = dict(os.environ)
    if env:
        full_env.update(env)

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd) if cwd else None,
            env=full_env,
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as exc:
        log.warning("process.spawn_failed", argv=argv[:2], error=str(exc), plugin_id=plugin_id)
        raise ProcessFailedError(127, str(exc), plugin_id) from exc

    try:
        stdout, stderr = await asyncio.wait_for(
            proc.communicate(stdin.encode() if stdin is not None else None), timeout
        )
    except asyncio.TimeoutError:
        _kill_group(proc)
        await proc.wait()
        log.warning("process.timeout", argv=argv[:2], timeout=timeout, plugin_id=plugin_id)
        raise PluginTimeoutError(timeout, plugin_id) from None
    except asyncio.CancelledError:
        _kill_group(proc)
        raise

    return ProcessOutput(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace").strip(),
        stderr=stderr.decode("utf-8", errors="replace").strip(),
    )
