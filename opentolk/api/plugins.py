from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from opentolk.core.errors import CatchAllConflictError
from opentolk.core.policy import DESCRIPTIONS
from opentolk.dependencies import Engine, EngineDep, get_plugin
from opentolk.schemas.command import PluginSummary, SettingsUpdate
from opentolk.schemas.manifest import SettingType
from opentolk.schemas.result import LoadedPlugin

log = structlog.get_logger()

router = APIRouter()

SECRET_MASK = "********"

PluginDep = Annotated[LoadedPlugin, Depends(get_plugin)]


def _summary(engine: Engine, plugin: LoadedPlugin) -> PluginSummary:
    manifest = plugin.manifest
    secrets = {s.key for s in manifest.settings if s.type is SettingType.secret}
    values = {
        key: SECRET_MASK if key in secrets and value else value
        for key, value in engine.settings_store.resolve(manifest).items()
    }
    return PluginSummary(
        id=plugin.id,
        name=manifest.name,
        version=manifest.version,
        description=manifest.description,
        enabled=plugin.enabled,
        trigger=manifest.trigger.type,
        execution=manifest.execution.type,
        permissions=[p.value for p in manifest.permissions],
        unapproved_permissions=[p.value for p in engine.permissions.unapproved(manifest)],
        permission_descriptions={p.value: DESCRIPTIONS[p] for p in manifest.permissions},
        settings=values,
    )


@router.get("", response_model=list[PluginSummary])
async def list_plugins(engine: EngineDep):
    return [_summary(engine, p) for p in engine.registry.plugins]


@router.post("/{plugin_id}/enable", response_model=PluginSummary)
async def enable_plugin(plugin: PluginDep, engine: EngineDep):
    try:
        engine.registry.set_enabled(plugin.id, True)
    except CatchAllConflictError as e:
        raise HTTPException(status.HTTP_409_CONFLICT, str(e))
    return _summary(engine, plugin)


@router.post("/{plugin_id}/disable", response_model=PluginSummary)
async def disable_plugin(plugin: PluginDep, engine: EngineDep):
    engine.registry.set_enabled(plugin.id, False)
    await engine.sessions.clear(plugin.id)
    return _summary(engine, plugin)


@router.post("/{plugin_id}/permissions/approve", response_model=PluginSummary)
async def approve_permissions(plugin: PluginDep, engine: EngineDep):
    engine.permissions.approve_all(plugin.manifest)
    return _summary(engine, plugin)


@router.post("/{plugin_id}/permissions/revoke", response_model=PluginSummary)
async def revoke_permissions(plugin: PluginDep, engine: EngineDep):
    engine.permissions.revoke_all(plugin.id)
    return _summary(engine, plugin)


@router.put("/{plugin_id}/settings", response_model=PluginSummary)
async def update_settings(body: SettingsUpdate, plugin: PluginDep, engine: EngineDep):
    declared = {s.key: s for s in plugin.manifest.settings}
    unknown = sorted(set(body.values) - set(declared))
    if unknown:
        raise HTTPException(
            status.HTTP_422_UNPROCESSABLE_ENTITY, f"Unknown settings: {', '.join(unknown)}"
        )

    for key, value in body.values.items():
        setting = declared[key]
        if setting.type is SettingType.select and setting.options and value not in setting.options:
            raise HTTPException(
                status.HTTP_422_UNPROCESSABLE_ENTITY,
                f"{key} must be one of: {', '.join(setting.options)}",
            )

    engine.settings_store.update(plugin.id, body.values)
    log.info("plugins.settings_updated", plugin_id=plugin.id, keys=sorted(body.values))
    return _summary(engine, plugin)
