from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from opentolk.schemas.manifest import OutputMode, PluginManifest, Trigger


@dataclass
class LoadedPlugin:
    """A manifest plus where it was loaded from and whether the user enabled it."""

    manifest: PluginManifest
    directory: Path
    enabled: bool = True

    @property
    def id(self) -> str:
        return self.manifest.id


@dataclass(frozen=True)
class Match:
    """Outcome of routing a piece of text to a plugin."""

    plugin: LoadedPlugin
    trigger: Trigger
    trigger_word: str  # empty for intent and catch-all matches
    input: str  # post-strip text handed to the plugin
    raw_input: str

    @classmethod
    def synthetic(cls, plugin: LoadedPlugin, text: str) -> "Match":
        """Match used for pipeline steps, tool invocations and conversation replies."""
        return cls(
            plugin=plugin,
            trigger=plugin.manifest.trigger,
            trigger_word="",
            input=text,
            raw_input=text,
        )


@dataclass(frozen=True)
class PluginResult:
    text: str
    output_mode: OutputMode | None = None
