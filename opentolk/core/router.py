from __future__ import annotations

import structlog

from opentolk.config import settings
from opentolk.core.classifier import IntentClassifier
from opentolk.core.matcher import match_deterministic
from opentolk.core.registry import PluginRegistry
from opentolk.schemas.manifest import CatchAllTrigger, IntentTrigger
from opentolk.schemas.result import Match

log = structlog.get_logger()


class PluginRouter:
    """Picks at most one plugin for a piece of text.

    Phases run in order and the first success wins: keyword/regex matching,
    intent classification, then the enabled catch-all plugin.
    """

    def __init__(
        self,
        registry: PluginRegistry,
        classifier: IntentClassifier,
        enabled: bool | None = None,
    ):
        self._registry = registry
        self._classifier = classifier
        self._enabled = settings.plugins_enabled if enabled is None else enabled

    async def route(self, text: str) -> Match | None:
        if not self._enabled:
            return None

        plugins = self._registry.enabled_plugins
        if not plugins:
            return None

        match = match_deterministic(text, plugins)
        if match is not None:
            log.info("router.matched", phase="deterministic", plugin_id=match.plugin.id,
                     trigger=match.trigger_word)
            return match

        intent_plugins = [p for p in plugins if isinstance(p.manifest.trigger, IntentTrigger)]
        if intent_plugins:
            match = await self._classifier.classify(text, intent_plugins)
            if match is not None:
                log.info("router.matched", phase="intent", plugin_id=match.plugin.id)
                return match

        for plugin in plugins:
            if isinstance(plugin.manifest.trigger, CatchAllTrigger):
                log.info("router.matched", phase="catch_all", plugin_id=plugin.id)
                return Match(
                    plugin=plugin,
                    trigger=plugin.manifest.trigger,
                    trigger_word="",
                    input=text,
                    raw_input=text,
                )

        log.debug("router.no_match")
        return None
