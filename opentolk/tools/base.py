from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from opentolk.schemas.manifest import Permission, ToolConfig
from opentolk.schemas.result import LoadedPlugin

if TYPE_CHECKING:
    import httpx
    from google.oauth2.credentials import Credentials

    from opentolk.core.sinks import DeliverySink


@dataclass
class ToolResult:
    name: str
    content: str


class BuiltinTool(ABC):
    name: str
    description: str
    permission: Permission | None = None

    @abstractmethod
    async def execute(self, args: dict[str, Any], context: ToolContext) -> str:
        """Execute the tool and return text for the model."""

    @abstractmethod
    def parameters_schema(self) -> dict[str, Any]:
        """JSON Schema for the tool's arguments."""


@dataclass
class ToolContext:
    """Runtime context passed to every builtin tool execution."""

    plugin: LoadedPlugin
    tool: ToolConfig
    settings: Mapping[str, str]
    sink: DeliverySink | None = None
    run_plugin: Callable[[str, str], Awaitable[str]] | None = None
    gmail_credentials: Callable[[], Credentials | None] | None = None
    http_client: httpx.AsyncClient | None = None


def required_str(args: dict[str, Any], key: str) -> str | None:
    value = args.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return None
