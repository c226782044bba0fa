from __future__ import annotations

from opentolk.tools.base import BuiltinTool

_REGISTRY: dict[str, BuiltinTool] = {}


def register_tool(tool: BuiltinTool) -> None:
    _REGISTRY[tool.name] = tool


def get_tool(name: str) -> BuiltinTool | None:
    return _REGISTRY.get(name)

