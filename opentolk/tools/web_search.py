from __future__ import annotations

from typing import Any

from opentolk.connectors.web_search import WebSearchClient
from opentolk.tools.base import BuiltinTool, ToolContext
from opentolk.tools.registry import register_tool


class WebSearchTool(BuiltinTool):
    name = "web_search"
    description = "Search the web for information. Returns relevant text results."

    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query"},
            },
            "required": ["query"],
        }

    async def execute(self, args: dict[str, Any], context: ToolContext) -> str:
        query = args.get("query") or ""
        if not isinstance(query, str) or not query.strip():
            return "No query provided"

        results = await WebSearchClient(client=context.http_client).search(query)
        if not results:
            return f"No results found for: {query}"
        return "\n\n".join(results)


register_tool(WebSearchTool())
