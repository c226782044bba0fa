from __future__ import annotations


class PluginError(Exception):
    """Base class for every failure the engine reports back to its caller."""

    kind = "plugin_error"

    def __init__(self, message: str, plugin_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.plugin_id = plugin_id
        self.pipeline_id: str | None = None


class PluginTimeoutError(PluginError):
    kind = "timeout"

    def __init__(self, timeout: float, plugin_id: str | None = None) -> None:
        super().__init__(f"Plugin timed out after {timeout:g}s", plugin_id)
        self.timeout = timeout


class ProcessFailedError(PluginError):
    kind = "process_failed"

    def __init__(self, exit_code: int, stderr: str, plugin_id: str | None = None) -> None:
        super().__init__(f"Script exited with code {exit_code}: {stderr}", plugin_id)
        self.exit_code = exit_code
        self.stderr = stderr


class HTTPFailedError(PluginError):
    kind = "http_failed"

    def __init__(self, status_code: int, body: str, plugin_id: str | None = None) -> None:
        super().__init__(f"HTTP {status_code}: {body}", plugin_id)
        self.status_code = status_code
        self.body = body


class MissingConfigError(PluginError):
    kind = "missing_config"

    def __init__(self, field: str, plugin_id: str | None = None) -> None:
        super().__init__(f"Plugin is missing required config: {field}", plugin_id)
        self.field = field


class UnknownToolError(PluginError):
    kind = "unknown_tool"

    def __init__(self, name: str, plugin_id: str | None = None) -> None:
        super().__init__(f"Unknown tool '{name}'", plugin_id)
        self.name = name


class PipelineTargetNotFoundError(PluginError):
    kind = "pipeline_target_not_found"

    def __init__(self, target_id: str, plugin_id: str | None = None) -> None:
        super().__init__(f"Pipeline plugin not found: {target_id}", plugin_id)
        self.target_id = target_id


class PipelineCycleError(PluginError):
    kind = "pipeline_cycle"

    def __init__(self, target_id: str, plugin_id: str | None = None) -> None:
        super().__init__(f"Pipeline step {target_id} would run itself recursively", plugin_id)
        self.target_id = target_id


class PermissionDeniedError(PluginError):
    kind = "permission_denied"

    def __init__(self, permission: str, plugin_id: str | None = None) -> None:
        super().__init__(f"Permission denied: {permission}", plugin_id)
        self.permission = permission


class AIRequestError(PluginError):
    kind = "ai_request_failed"


class ManifestError(ValueError):
    """A manifest file could not be decoded or violates a manifest invariant."""


class CatchAllConflictError(ValueError):
    """Raised when enabling a second catch-all plugin."""


class DeliveryError(Exception):
    """A delivery sink could not deliver a result."""
