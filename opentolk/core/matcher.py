"""Deterministic trigger matching (keyword and regex).

Never awaits anything: the router runs this phase before any network or AI call.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import assert_never

import structlog

from opentolk.schemas.manifest import (
    CatchAllTrigger,
    IntentTrigger,
    KeywordTrigger,
    RegexTrigger,
    Trigger,
    TriggerPosition,
)
from opentolk.schemas.result import LoadedPlugin, Match

log = structlog.get_logger()


def trigger_priority(trigger: Trigger) -> int:
    if isinstance(trigger, KeywordTrigger):
        return 10
    if isinstance(trigger, RegexTrigger):
        return 5
    if isinstance(trigger, IntentTrigger):
        return 3
    if isinstance(trigger, CatchAllTrigger):
        return 0
    assert_never(trigger)


def match_deterministic(text: str, plugins: list[LoadedPlugin]) -> Match | None:
    """Best keyword/regex match across plugins.

    Higher trigger priority wins; at equal priority the longer matched trigger
    text wins; full ties keep the earlier plugin.
    """
    best: Match | None = None
    best_priority = -1
    best_length = 0

    for plugin in plugins:
        match = match_trigger(plugin, text)
        if match is None:
            continue
        priority = trigger_priority(match.trigger)
        length = len(match.trigger_word)
        if priority > best_priority or (priority == best_priority and length > best_length):
            best, best_priority, best_length = match, priority, length

    return best


def match_trigger(plugin: LoadedPlugin, text: str) -> Match | None:
    trigger = plugin.manifest.trigger
    if isinstance(trigger, KeywordTrigger):
        return match_keyword(plugin, trigger, text)
    if isinstance(trigger, RegexTrigger):
        return match_regex(plugin, trigger, text)
    if isinstance(trigger, (IntentTrigger, CatchAllTrigger)):
        return None  # handled by later router phases
    assert_never(trigger)


def keyword_matches(lower_text: str, lower_keyword: str, position: TriggerPosition) -> bool:
    if position is TriggerPosition.start:
        if not lower_text.startswith(lower_keyword):
            return False
        rest = lower_text[len(lower_keyword):]
        return not rest or not rest[0].isalpha()
    if position is TriggerPosition.end:
        if not lower_text.endswith(lower_keyword):
            return False
        rest = lower_text[: len(lower_text) - len(lower_keyword)]
        return not rest or not rest[-1].isalpha()
    return lower_keyword in lower_text


def match_keyword(plugin: LoadedPlugin, trigger: KeywordTrigger, text: str) -> Match | None:
    lower_text = text.strip().lower()

    for keyword in sorted(trigger.keywords, key=len, reverse=True):
        if not keyword:
            continue
        if keyword_matches(lower_text, keyword.lower(), trigger.position):
            span = re.search(re.escape(keyword), text, re.IGNORECASE)
            return Match(
                plugin=plugin,
                trigger=trigger,
                trigger_word=keyword,
                input=strip_span(text, span) if trigger.strip_trigger else text,
                raw_input=text,
            )
    return None


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        log.warning("matcher.invalid_regex", pattern=pattern)
        return None


def match_regex(plugin: LoadedPlugin, trigger: RegexTrigger, text: str) -> Match | None:
    regex = _compile(trigger.pattern)
    if regex is None:
        return None

    span = regex.search(text)
    if span is None:
        return None

    return Match(
        plugin=plugin,
        trigger=trigger,
        trigger_word=span.group(0),
        input=strip_span(text, span) if trigger.strip_trigger else text,
        raw_input=text,
    )


def strip_span(text: str, span: re.Match[str] | None) -> str:
    """Remove the matched trigger text and trim what is left."""
    if span is None:
        return text
    return (text[: span.start()] + text[span.end():]).strip()
