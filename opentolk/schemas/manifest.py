from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, JsonValue, model_validator


class Permission(StrEnum):
    network = "network"
    filesystem = "filesystem"
    clipboard = "clipboard"
    notifications = "notifications"
    ai = "ai"
    microphone = "microphone"
    gmail = "gmail"


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------

class TriggerPosition(StrEnum):
    start = "start"
    end = "end"
    anywhere = "anywhere"


class KeywordTrigger(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["keyword"] = "keyword"
    keywords: list[str] = Field(..., min_length=1)
    position: TriggerPosition = TriggerPosition.start
    strip_trigger: bool = False


class RegexTrigger(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["regex"] = "regex"
    pattern: str
    strip_trigger: bool = False


class IntentTrigger(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["intent"] = "intent"
    intents: list[str] = Field(..., min_length=1)
    examples: list[str] = Field(default_factory=list)


class CatchAllTrigger(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["catch_all"] = "catch_all"


Trigger = Annotated[
    Union[KeywordTrigger, RegexTrigger, IntentTrigger, CatchAllTrigger],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Execution configs
# ---------------------------------------------------------------------------

class ScriptConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["script"] = "script"
    command: str | None = None
    inline: str | None = None
    interpreter: str | None = None
    timeout: int | None = None

    @model_validator(mode="after")
    def exactly_one_source(self) -> "ScriptConfig":
        if (self.command is None) == (self.inline is None):
            raise ValueError("script execution needs exactly one of 'command' or 'inline'")
        return self


class HTTPConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["http"] = "http"
    url: str
    method: str = "POST"
    headers: dict[str, str] = Field(default_factory=dict)
    body: JsonValue = None
    response_json_path: str | None = None
    timeout: int | None = None


class ShortcutConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["shortcut"] = "shortcut"
    shortcut_name: str
    timeout: int | None = None


class ToolConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: Literal["builtin", "script"]
    description: str | None = None
    command: str | None = None
    config: dict[str, str] = Field(default_factory=dict)
    parameters: dict[str, JsonValue] | None = None


class AIConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["ai"] = "ai"
    model: str | None = None
    system_prompt: str | None = None
    system_prompt_file: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    streaming: bool | None = None
    conversational: bool = False
    tools: list[ToolConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def exactly_one_prompt(self) -> "AIConfig":
        if (self.system_prompt is None) == (self.system_prompt_file is None):
            raise ValueError(
                "ai execution needs exactly one of 'system_prompt' or 'system_prompt_file'"
            )
        return self

    @property
    def should_stream(self) -> bool:
        if self.streaming is not None:
            return self.streaming
        return self.conversational


class PipelineStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    plugin: str
    settings_override: dict[str, str] = Field(default_factory=dict)


class PipelineConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["pipeline"] = "pipeline"
    steps: list[PipelineStep] = Field(..., min_length=1)


ExecutionConfig = Annotated[
    Union[ScriptConfig, HTTPConfig, ShortcutConfig, AIConfig, PipelineConfig],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Output policy
# ---------------------------------------------------------------------------

class OutputMode(StrEnum):
    paste = "paste"
    clipboard = "clipboard"
    notify = "notify"
    speak = "speak"
    panel = "panel"
    store = "store"
    silent = "silent"
    reply = "reply"


class OutputFormat(StrEnum):
    plain = "plain"
    markdown = "markdown"


class OutputPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: OutputMode = OutputMode.paste
    fallback: OutputMode | None = None
    also: list[OutputMode] = Field(default_factory=list)
    format: OutputFormat = OutputFormat.plain


# ---------------------------------------------------------------------------
# Settings definitions
# ---------------------------------------------------------------------------

class SettingType(StrEnum):
    string = "string"
    secret = "secret"
    select = "select"
    bool = "bool"
    text = "text"
    number = "number"


class PluginSetting(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    type: SettingType = SettingType.string
    required: bool = False
    options: list[str] | None = None
    default: JsonValue = None
    placeholder: str | None = None


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------

class AuthorInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    url: str | None = None


class PluginManifest(BaseModel):
    """A declarative plugin definition, decoded from manifest.json."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1, description="Reverse-domain id, e.g. com.author.name")
    name: str
    version: str = "0.0.0"
    description: str = ""
    author: AuthorInfo | None = None
    icon: str | None = None
    categories: list[str] = Field(default_factory=list)
    permissions: list[Permission] = Field(default_factory=list)
    min_app_version: str | None = None
    homepage: str | None = None
    repository: str | None = None
    license: str | None = None

    trigger: Trigger
    execution: ExecutionConfig
    output: OutputPolicy | None = None
    settings: list[PluginSetting] = Field(default_factory=list)

    @property
    def output_mode(self) -> OutputMode:
        return self.output.mode if self.output else OutputMode.paste

    @property
    def output_format(self) -> OutputFormat:
        return self.output.format if self.output else OutputFormat.plain
