from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any

import httpx
import structlog

import opentolk.tools.desktop  # noqa: F401
import opentolk.tools.gmail  # noqa: F401
import opentolk.tools.run_plugin  # noqa: F401
import opentolk.tools.web_search  # noqa: F401
from opentolk.config import settings as app_settings
from opentolk.connectors.llm import ToolCall, ToolDefinition
from opentolk.core.backends.script import infer_interpreter
from opentolk.core.errors import MissingConfigError, UnknownToolError
from opentolk.core.policy import PermissionStore
from opentolk.core.process import ENV_PREFIX, run_process, settings_environment
from opentolk.core.sinks import DeliverySink
from opentolk.schemas.manifest import ToolConfig
from opentolk.schemas.result import LoadedPlugin
from opentolk.tools.base import ToolContext, ToolResult
from opentolk.tools.registry import get_tool

if TYPE_CHECKING:
    from google.oauth2.credentials import Credentials

log = structlog.get_logger()

EMPTY_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}


class ToolRunner:
    """Executes the tools an AI plugin declares. Never raises: errors become text."""

    def __init__(
        self,
        sink: DeliverySink | None = None,
        run_plugin: Callable[[str, str], Awaitable[str]] | None = None,
        gmail_credentials: Callable[[], Credentials | None] | None = None,
        permissions: PermissionStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        self._sink = sink
        self._run_plugin = run_plugin
        self._gmail_credentials = gmail_credentials
        self._permissions = permissions
        self._http_client = http_client
        self._timeout = timeout or app_settings.tool_timeout_seconds

    def definitions(self, tools: list[ToolConfig]) -> list[ToolDefinition]:
        """Tool definitions for the model; builtins fall back to their own schema."""
        defs: list[ToolDefinition] = []
        for tool in tools:
            builtin = get_tool(tool.name) if tool.type == "builtin" else None
            if builtin is not None:
                defs.append(
                    ToolDefinition(
                        name=tool.name,
                        description=tool.description or builtin.description,
                        parameters=tool.parameters or builtin.parameters_schema(),
                    )
                )
            else:
                defs.append(
                    ToolDefinition(
                        name=tool.name,
                        description=tool.description or f"Tool: {tool.name}",
                        parameters=tool.parameters or EMPTY_SCHEMA,
                    )
                )
        return defs

    async def run(
        self,
        tools: list[ToolConfig],
        call: ToolCall,
        plugin: LoadedPlugin,
        settings: Mapping[str, str],
    ) -> ToolResult:
        tool = next((t for t in tools if t.name == call.name), None)
        try:
            if tool is None:
                raise UnknownToolError(call.name, plugin.id)
            if tool.type == "builtin":
                content = await self._run_builtin(tool, call, plugin, settings)
            else:
                content = await self._run_script(tool, call, plugin, settings)
        except Exception as exc:
            log.warning("tool.failed", plugin_id=plugin.id, tool=call.name, error=str(exc))
            content = f"Error: {exc}"
        else:
            log.info("tool.ok", plugin_id=plugin.id, tool=call.name, length=len(content))
        return ToolResult(name=call.name, content=content)

    async def _run_builtin(
        self,
        tool: ToolConfig,
        call: ToolCall,
        plugin: LoadedPlugin,
        settings: Mapping[str, str],
    ) -> str:
        builtin = get_tool(call.name)
        if builtin is None:
            raise UnknownToolError(call.name, plugin.id)

        if (
            builtin.permission is not None
            and self._permissions is not None
            and not self._permissions.has(plugin.id, builtin.permission)
        ):
            return f"Error: Permission denied: {builtin.permission.value}"

        context = ToolContext(
            plugin=plugin,
            tool=tool,
            settings=settings,
            sink=self._sink,
            run_plugin=self._run_plugin,
            gmail_credentials=self._gmail_credentials,
            http_client=self._http_client,
        )
        return await builtin.execute(call.arguments, context)

    async def _run_script(
        self,
        tool: ToolConfig,
        call: ToolCall,
        plugin: LoadedPlugin,
        settings: Mapping[str, str],
    ) -> str:
        if not tool.command:
            raise MissingConfigError(f"command for tool '{tool.name}'", plugin.id)

        script_path = plugin.directory / tool.command
        interpreter = infer_interpreter(tool.command) or "bash"
        args_json = json.dumps(call.arguments, ensure_ascii=False)

        env = {
            f"{ENV_PREFIX}TOOL_NAME": call.name,
            f"{ENV_PREFIX}TOOL_ARGS": args_json,
        }
        env.update(settings_environment(settings))

        output = await run_process(
            [interpreter, str(script_path)],
            timeout=self._timeout,
            cwd=plugin.directory,
            env=env,
            stdin=args_json,
            plugin_id=plugin.id,
        )
        if output.returncode != 0:
            return f"Error: {output.stderr}"
        return output.stdout
