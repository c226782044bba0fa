from __future__ import annotations

from typing import Any

from opentolk.tools.base import BuiltinTool, ToolContext
from opentolk.tools.registry import register_tool


class RunPluginTool(BuiltinTool):
    name = "run_plugin"
    description = "Run another OpenTolk plugin and return its output."

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "plugin_id": {"type": "string", "description": "The plugin ID to run"},
                "input": {"type": "string", "description": "Input text for the plugin"},
            },
            "required": ["input"],
        }

    async def execute(self, args: dict[str, Any], context: ToolContext) -> str:
        if context.run_plugin is None:
            raise RuntimeError("Running plugins is not available")
        # A plugin_id pinned in the tool config wins over the model's choice
        plugin_id = context.tool.config.get("plugin_id") or str(args.get("plugin_id") or "")
        return await context.run_plugin(plugin_id, str(args.get("input", "")))


register_tool(RunPluginTool())
