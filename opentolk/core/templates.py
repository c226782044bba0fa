from __future__ import annotations

import re
from collections.abc import Mapping

from pydantic import JsonValue

_PLACEHOLDER = re.compile(r"\{\{(input|settings\.([^{}]+))\}\}")


def resolve_template(template: str, input: str, settings: Mapping[str, str]) -> str:
    """Substitute ``{{input}}`` and ``{{settings.KEY}}`` placeholders.

    Substitution is a single pass, so placeholder-looking text inside the input or a
    setting value is never expanded again. Placeholders naming an unknown setting are
    left verbatim.
    """

    def _replace(m: re.Match[str]) -> str:
        if m.group(1) == "input":
            return input
        key = m.group(2)
        if key in settings:
            return settings[key]
        return m.group(0)

    return _PLACEHOLDER.sub(_replace, template)


def resolve_value(value: JsonValue, input: str, settings: Mapping[str, str]) -> JsonValue:
    """Resolve templates in every string nested inside a JSON value."""
    if isinstance(value, str):
        return resolve_template(value, input, settings)
    if isinstance(value, list):
        return [resolve_value(v, input, settings) for v in value]
    if isinstance(value, dict):
        return {k: resolve_value(v, input, settings) for k, v in value.items()}
    return value
