from __future__ import annotations

import json

from pydantic import JsonValue

from opentolk.schemas.manifest import OutputMode
from opentolk.schemas.result import PluginResult

OUTPUT_DIRECTIVE = "@output:"


def _as_mode(value: object) -> OutputMode | None:
    if not isinstance(value, str):
        return None
    try:
        return OutputMode(value.strip())
    except ValueError:
        return None


def parse_output(raw: str, default_mode: OutputMode) -> PluginResult:
    """Turn backend output into a result, honouring embedded output directives.

    Tried in order: a JSON object with a ``text`` field (and optional ``output``
    mode), an ``@output:<mode>`` first line, then the raw text at ``default_mode``.
    """
    if raw.startswith("{"):
        try:
            payload = json.loads(raw)
        except ValueError:
            payload = None
        if isinstance(payload, dict) and isinstance(payload.get("text"), str):
            mode = _as_mode(payload.get("output")) or default_mode
            return PluginResult(text=payload["text"], output_mode=mode)

    if raw.startswith(OUTPUT_DIRECTIVE):
        head, sep, body = raw[len(OUTPUT_DIRECTIVE):].partition("\n")
        mode = _as_mode(head)
        if sep and mode is not None:
            return PluginResult(text=body, output_mode=mode)

    return PluginResult(text=raw, output_mode=default_mode)


def _parse_path(path: str) -> list[str | int]:
    components: list[str | int] = []
    current = ""
    for char in path:
        if char in ".[":
            if current:
                components.append(current)
            current = ""
        elif char == "]":
            if current.isdigit():
                components.append(int(current))
            current = ""
        else:
            current += char
    if current:
        components.append(current)
    return components


def extract_json_path(data: JsonValue, path: str) -> str | None:
    """Select a nested value with a path such as ``data.items[0].text``.

    Strings are returned as-is, other values are re-serialised as JSON. Returns
    None when any component along the path is missing.
    """
    current = data
    for component in _parse_path(path):
        if isinstance(component, int):
            if not isinstance(current, list) or component >= len(current):
                return None
            current = current[component]
        else:
            if not isinstance(current, dict) or component not in current:
                return None
            current = current[component]

    if isinstance(current, str):
        return current
    return json.dumps(current, ensure_ascii=False)
