from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, assert_never

import httpx
import structlog

from opentolk.config import Settings, settings as app_settings
from opentolk.connectors.llm import BaseLLMClient, ChatMessage
from opentolk.core import policy
from opentolk.core.backends.ai import run_ai
from opentolk.core.backends.http import run_http
from opentolk.core.backends.pipeline import run_pipeline
from opentolk.core.backends.script import run_script
from opentolk.core.backends.shortcut import run_shortcut
from opentolk.core.policy import PermissionStore
from opentolk.core.registry import PluginRegistry, SettingsStore
from opentolk.core.session_manager import SessionManager
from opentolk.core.sinks import DeliverySink
from opentolk.core.stream import ResultStream
from opentolk.core.tool_runner import ToolRunner
from opentolk.schemas.manifest import (
    AIConfig,
    HTTPConfig,
    PipelineConfig,
    ScriptConfig,
    ShortcutConfig,
)
from opentolk.schemas.result import Match, PluginResult

if TYPE_CHECKING:
    from google.oauth2.credentials import Credentials

log = structlog.get_logger()

RunResult = PluginResult | ResultStream


class Executor:
    """Runs a matched plugin through the backend its manifest selects."""

    def __init__(
        self,
        registry: PluginRegistry,
        settings_store: SettingsStore,
        llm: BaseLLMClient | None = None,
        sessions: SessionManager | None = None,
        permissions: PermissionStore | None = None,
        sink: DeliverySink | None = None,
        gmail_credentials: Callable[[], Credentials | None] | None = None,
        http_client: httpx.AsyncClient | None = None,
        config: Settings = app_settings,
    ):
        self._registry = registry
        self._settings = settings_store
        self._llm = llm
        self._sessions = sessions
        self._permissions = permissions
        self._http_client = http_client
        self._config = config
        self._tools = ToolRunner(
            sink=sink,
            run_plugin=self.run_plugin_by_id,
            gmail_credentials=gmail_credentials,
            permissions=permissions,
            http_client=http_client,
            timeout=config.tool_timeout_seconds,
        )

    async def run(
        self,
        match: Match,
        history: list[ChatMessage] | None = None,
        settings_override: dict[str, str] | None = None,
        pipeline_chain: tuple[str, ...] = (),
    ) -> RunResult:
        plugin = match.plugin
        manifest = plugin.manifest
        if self._permissions is not None:
            policy.enforce(manifest, self._permissions)

        resolved = self._settings.resolve(manifest)
        if settings_override:
            resolved.update(settings_override)

        execution = manifest.execution
        timeout = self._config.default_timeout_seconds
        log.info("executor.run", plugin_id=plugin.id, backend=execution.type)

        if isinstance(execution, ScriptConfig):
            return await run_script(
                match, execution, resolved, self._registry.data_directory(plugin.id), timeout
            )
        if isinstance(execution, HTTPConfig):
            return await run_http(match, execution, resolved, timeout, self._http_client)
        if isinstance(execution, ShortcutConfig):
            return await run_shortcut(match, execution, self._config.shortcuts_binary, timeout)
        if isinstance(execution, AIConfig):
            return await run_ai(
                match,
                execution,
                resolved,
                self._llm,
                self._sessions,
                self._tools,
                self._config.max_tool_rounds,
                history=history,
            )
        if isinstance(execution, PipelineConfig):
            return await run_pipeline(
                match, execution, self._registry, self._run_step, pipeline_chain
            )
        assert_never(execution)

    async def _run_step(
        self, match: Match, settings_override: dict[str, str], chain: tuple[str, ...]
    ) -> RunResult:
        return await self.run(match, settings_override=settings_override, pipeline_chain=chain)

    async def run_plugin_by_id(self, plugin_id: str, text: str) -> str:
        """Run an enabled plugin on ``text`` and return its complete output text."""
        plugin = self._registry.get_enabled(plugin_id)
        if plugin is None:
            return f"Plugin not found: {plugin_id}"

        result = await self.run(Match.synthetic(plugin, text))
        if isinstance(result, ResultStream):
            return await result.collect()
        return result.text
