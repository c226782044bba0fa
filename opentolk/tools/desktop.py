from __future__ import annotations

from typing import Any

from opentolk.schemas.manifest import Permission
from opentolk.tools.base import BuiltinTool, ToolContext
from opentolk.tools.registry import register_tool


class ReadClipboardTool(BuiltinTool):
    name = "read_clipboard"
    description = "Read the current contents of the user's clipboard."
    permission = Permission.clipboard

    def parameters_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, args: dict[str, Any], context: ToolContext) -> str:
        if context.sink is None:
            raise RuntimeError("Clipboard is not available")
        return await context.sink.read_clipboard()


class PasteTool(BuiltinTool):
    name = "paste"
    description = "Paste text into the user's active application."

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "text": {"type": "string", "description": "The text to paste"},
            },
            "required": ["text"],
        }

    async def execute(self, args: dict[str, Any], context: ToolContext) -> str:
        if context.sink is None:
            raise RuntimeError("Paste is not available")
        await context.sink.paste(str(args.get("text", "")))
        return "Pasted successfully"


_TOOLS = [
    ReadClipboardTool(),
    PasteTool(),
]

for _t in _TOOLS:
    register_tool(_t)
