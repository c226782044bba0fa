from __future__ import annotations

from pathlib import Path

import structlog

from opentolk.config import settings
from opentolk.core.errors import CatchAllConflictError
from opentolk.schemas.manifest import CatchAllTrigger, PluginManifest
from opentolk.schemas.result import LoadedPlugin

log = structlog.get_logger()


class PluginRegistry:
    """The set of loaded plugins, in registration order."""

    def __init__(self, data_dir: Path | None = None) -> None:
        self._plugins: dict[str, LoadedPlugin] = {}
        self._data_dir = data_dir or settings.data_dir

    def register(self, plugin: LoadedPlugin) -> None:
        if plugin.enabled:
            self._check_catch_all(plugin)
        if plugin.id in self._plugins:
            log.warning("registry.replaced", plugin_id=plugin.id)
        self._plugins[plugin.id] = plugin
        log.debug("registry.registered", plugin_id=plugin.id, enabled=plugin.enabled)

    def set_enabled(self, plugin_id: str, enabled: bool) -> LoadedPlugin:
        plugin = self._plugins[plugin_id]
        if enabled and not plugin.enabled:
            self._check_catch_all(plugin)
        plugin.enabled = enabled
        log.info("registry.set_enabled", plugin_id=plugin_id, enabled=enabled)
        return plugin

    @property
    def plugins(self) -> list[LoadedPlugin]:
        return list(self._plugins.values())

    @property
    def enabled_plugins(self) -> list[LoadedPlugin]:
        return [p for p in self._plugins.values() if p.enabled]

    def get(self, plugin_id: str) -> LoadedPlugin | None:
        return self._plugins.get(plugin_id)

    def get_enabled(self, plugin_id: str) -> LoadedPlugin | None:
        plugin = self._plugins.get(plugin_id)
        return plugin if plugin is not None and plugin.enabled else None

    def data_directory(self, plugin_id: str) -> Path:
        """Writable per-plugin data directory, created on first use."""
        path = self._data_dir / plugin_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _check_catch_all(self, plugin: LoadedPlugin) -> None:
        if not isinstance(plugin.manifest.trigger, CatchAllTrigger):
            return
        for other in self.enabled_plugins:
            if other.id != plugin.id and isinstance(other.manifest.trigger, CatchAllTrigger):
                raise CatchAllConflictError(
                    f"{plugin.id} is a catch-all but {other.id} already is one"
                )


def _render(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class SettingsStore:
    """User-provided setting values, layered over each manifest's defaults."""

    def __init__(self) -> None:
        self._overrides: dict[str, dict[str, str]] = {}

    def set(self, plugin_id: str, key: str, value: object) -> None:
        self._overrides.setdefault(plugin_id, {})[key] = _render(value)

    def update(self, plugin_id: str, values: dict[str, object]) -> None:
        for key, value in values.items():
            self.set(plugin_id, key, value)

    def resolve(self, manifest: PluginManifest) -> dict[str, str]:
        resolved = {s.key: _render(s.default) for s in manifest.settings if s.default is not None}
        resolved.update(self._overrides.get(manifest.id, {}))
        return resolved
