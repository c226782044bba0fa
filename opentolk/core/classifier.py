from __future__ import annotations

import structlog

from opentolk.connectors.llm import BaseLLMClient, ChatMessage
from opentolk.schemas.manifest import IntentTrigger
from opentolk.schemas.result import LoadedPlugin, Match

log = structlog.get_logger()

CLASSIFIER_SYSTEM_PROMPT = (
    "You are a classification assistant. Respond with only a plugin ID or 'none'."
)

CLASSIFICATION_PROMPT_TEMPLATE = """\
You are a plugin router. Given user text, determine which plugin best matches.
Respond with ONLY the plugin ID, or "none" if no plugin matches.

Available plugins:
{plugins}

User text: {text}"""


def build_classification_prompt(text: str, plugins: list[LoadedPlugin]) -> str:
    descriptions: list[str] = []
    for plugin in plugins:
        trigger = plugin.manifest.trigger
        if not isinstance(trigger, IntentTrigger):
            continue
        desc = f"Plugin ID: {plugin.id}\nIntents: {', '.join(trigger.intents)}"
        if trigger.examples:
            desc += f"\nExamples: {'; '.join(trigger.examples)}"
        descriptions.append(desc)

    return CLASSIFICATION_PROMPT_TEMPLATE.format(plugins="\n\n".join(descriptions), text=text)


class IntentClassifier:
    """AI fallback matcher for intent triggers. Failures degrade to no match."""

    def __init__(self, llm: BaseLLMClient | None):
        self._llm = llm

    async def classify(self, text: str, plugins: list[LoadedPlugin]) -> Match | None:
        candidates = [p for p in plugins if isinstance(p.manifest.trigger, IntentTrigger)]
        if not candidates or self._llm is None:
            return None

        messages = [
            ChatMessage(role="system", content=CLASSIFIER_SYSTEM_PROMPT),
            ChatMessage(role="user", content=build_classification_prompt(text, candidates)),
        ]

        try:
            response = await self._llm.chat(messages, temperature=0.0, max_tokens=100)
        except Exception:
            log.exception("classifier.failed", candidates=len(candidates))
            return None

        plugin_id = response.strip().strip("`'\"")
        if plugin_id.lower() == "none":
            log.debug("classifier.no_match")
            return None

        plugin = next((p for p in candidates if p.id == plugin_id), None)
        if plugin is None:
            log.info("classifier.unknown_id", response=plugin_id[:100])
            return None

        log.info("classifier.matched", plugin_id=plugin.id)
        return Match(
            plugin=plugin,
            trigger=plugin.manifest.trigger,
            trigger_word="",
            input=text,
            raw_input=text,
        )
