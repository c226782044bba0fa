from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from opentolk.schemas.manifest import OutputFormat, OutputMode


class CommandRequest(BaseModel):
    text: str = Field(..., min_length=1, description="Speech-to-text transcript")
    clipboard: str = Field("", description="Current clipboard contents, for read_clipboard")


class ReplyRequest(BaseModel):
    plugin_id: str
    text: str = Field(..., min_length=1)
    clipboard: str = ""


class ClearSessionRequest(BaseModel):
    plugin_id: str


class DeliveryAction(BaseModel):
    """A delivery the desktop client must perform locally (paste, speak, ...)."""

    mode: OutputMode
    text: str
    title: str | None = None
    format: OutputFormat = OutputFormat.plain
    plugin_id: str | None = None


class ErrorInfo(BaseModel):
    kind: str
    message: str
    plugin_id: str | None = None
    pipeline_id: str | None = None


class CommandResponse(BaseModel):
    matched: bool
    plugin_id: str | None = None
    actions: list[DeliveryAction] = Field(default_factory=list)
    error: ErrorInfo | None = None


class PluginSummary(BaseModel):
    id: str
    name: str
    version: str
    description: str
    enabled: bool
    trigger: str
    execution: str
    permissions: list[str] = Field(default_factory=list)
    unapproved_permissions: list[str] = Field(default_factory=list)
    permission_descriptions: dict[str, str] = Field(default_factory=dict)
    settings: dict[str, str] = Field(default_factory=dict)


class SettingsUpdate(BaseModel):
    values: dict[str, Any]
