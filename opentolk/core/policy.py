from __future__ import annotations

import structlog

from opentolk.core.errors import PermissionDeniedError
from opentolk.schemas.manifest import Permission, PluginManifest

log = structlog.get_logger()

DESCRIPTIONS: dict[Permission, str] = {
    Permission.network: "Make internet requests",
    Permission.filesystem: "Read and write files in its data directory",
    Permission.clipboard: "Read your clipboard contents",
    Permission.notifications: "Send system notifications",
    Permission.ai: "Use AI models to process your text",
    Permission.microphone: "Access the microphone",
    Permission.gmail: "Read and send emails through your connected Gmail account",
}


class PermissionStore:
    """Capabilities the user has approved, per plugin id."""

    def __init__(self, auto_approve: bool = False) -> None:
        self._approved: dict[str, set[Permission]] = {}
        self._auto_approve = auto_approve

    def unapproved(self, manifest: PluginManifest) -> list[Permission]:
        if self._auto_approve:
            return []
        missing = set(manifest.permissions) - self._approved.get(manifest.id, set())
        return sorted(missing, key=lambda p: p.value)

    def approve_all(self, manifest: PluginManifest) -> None:
        self._approved[manifest.id] = set(manifest.permissions)
        log.info("policy.approved", plugin_id=manifest.id, permissions=sorted(manifest.permissions))

    def revoke_all(self, plugin_id: str) -> None:
        self._approved.pop(plugin_id, None)
        log.info("policy.revoked", plugin_id=plugin_id)

    def has(self, plugin_id: str, permission: Permission) -> bool:
        return self._auto_approve or permission in self._approved.get(plugin_id, set())


def enforce(manifest: PluginManifest, store: PermissionStore) -> None:
    """Refuse to run a plugin whose declared permissions are not all approved."""
    missing = store.unapproved(manifest)
    if missing:
        log.warning("policy.denied", plugin_id=manifest.id, missing=[p.value for p in missing])
        raise PermissionDeniedError(missing[0].value, manifest.id)
