from __future__ import annotations

from pathlib import Path

import structlog
from pydantic import ValidationError

from opentolk.core.errors import CatchAllConflictError, ManifestError
from opentolk.core.registry import PluginRegistry
from opentolk.schemas.manifest import PluginManifest
from opentolk.schemas.result import LoadedPlugin

log = structlog.get_logger()

MANIFEST_FILE = "manifest.json"


def load_manifest(path: Path) -> PluginManifest:
    try:
        return PluginManifest.model_validate_json(path.read_bytes())
    except ValidationError as exc:
        raise ManifestError(f"{path}: {exc}") from exc


def load_plugins(directory: Path, registry: PluginRegistry) -> list[LoadedPlugin]:
    """Scan plugin subdirectories once and register every valid manifest.

    Broken manifests are logged and skipped. A second catch-all plugin is
    registered disabled.
    """
    loaded: list[LoadedPlugin] = []

    if not directory.is_dir():
        log.warning("plugins directory not found", path=str(directory))
        return loaded

    for plugin_dir in sorted(directory.iterdir()):
        manifest_path = plugin_dir / MANIFEST_FILE
        if not plugin_dir.is_dir() or not manifest_path.exists():
            continue

        try:
            manifest = load_manifest(manifest_path)
        except (ManifestError, OSError):
            log.exception("failed to load manifest", path=str(manifest_path))
            continue

        plugin = LoadedPlugin(manifest=manifest, directory=plugin_dir.resolve())
        try:
            registry.register(plugin)
        except CatchAllConflictError as exc:
            log.warning("second catch-all disabled", plugin_id=manifest.id, reason=str(exc))
            plugin.enabled = False
            registry.register(plugin)

        loaded.append(plugin)
        log.debug("loaded plugin", plugin_id=manifest.id, trigger=manifest.trigger.type)

    log.info("plugin discovery complete", count=len(loaded))
    return loaded
