"""本地兜底回复生成器。

所有远端 Provider 都失败时启用。先按情绪基调选模板族，中性时依次看意图、
话题、是否提问，最后落到 default 族；族内模板由注入的随机源（或显式下标）
选择，因此在固定种子下输出完全确定。无论输入如何都不会返回空字符串。
"""

import random
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

import yaml

from tutor_core.domain.models import ConversationContext, EmotionalTone, Intent, KnowledgeLevel
from tutor_core.infrastructure.logging.logger import logger

TEMPLATES_PATH = Path(__file__).resolve().parent / "templates.yaml"

GENERIC_REPLY = (
    "I'm here to support your learning journey! Even when technical systems have hiccups, "
    "education continues. What would you like to explore together?"
)

TONE_FAMILIES: Mapping[EmotionalTone, str] = {
    EmotionalTone.FRUSTRATED: "supportive",
    EmotionalTone.CURIOUS: "exploratory",
    EmotionalTone.CONFUSED: "clarifying",
    EmotionalTone.CONFIDENT: "advanced",
}

INTENT_FAMILIES: Mapping[Intent, str] = {
    Intent.GREETING: "greeting",
    Intent.HELP_REQUEST: "study_help",
    Intent.CLARIFICATION: "clarifying",
    Intent.ACKNOWLEDGMENT: "acknowledgment",
}


@dataclass(frozen=True)
class FallbackTemplate:
    family: str
    text: str
    topic_slot: bool = False
    history: Optional[bool] = None


@dataclass(frozen=True)
class FallbackTable:
    """版本化的模板表，加载后只读。"""

    version: int
    families: Mapping[str, Sequence[FallbackTemplate]]
    level_phrases: Mapping[str, str]
    generic: str = GENERIC_REPLY

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "FallbackTable":
        data = yaml.safe_load(Path(path or TEMPLATES_PATH).read_text(encoding="utf-8")) or {}
        families: Dict[str, List[FallbackTemplate]] = {}
        for family, items in (data.get("families") or {}).items():
            families[family] = [
                FallbackTemplate(
                    family=family,
                    text=str(item["text"]),
                    topic_slot=bool(item.get("topic_slot", False)),
                    history=item.get("history"),
                )
                for item in items or []
                if item and item.get("text")
            ]
        logger.info(
            "fallback.templates_loaded",
            extra={"extra": {"version": data.get("version"), "families": len(families)}},
        )
        return cls(
            version=int(data.get("version", 0)),
            families={k: tuple(v) for k, v in families.items()},
            level_phrases=dict(data.get("level_phrases") or {}),
            generic=str(data.get("generic") or GENERIC_REPLY),
        )


def choose_family(context: ConversationContext) -> str:
    family = TONE_FAMILIES.get(context.emotional_tone)
    if family:
        return family
    family = INTENT_FAMILIES.get(context.intent)
    if family:
        return family
    if context.topics:
        return "subject"
    if context.is_question:
        return "question"
    return "default"


class FallbackGenerator:
    """根据 ConversationContext 选择并填充兜底模板。"""

    def __init__(self, table: FallbackTable, rng: Optional[random.Random] = None):
        self._table = table
        self._rng = rng or random.Random()

    def family_texts(self, family: str) -> List[str]:
        return [t.text for t in self._table.families.get(family, ())]

    def generate(self, context: ConversationContext, index: Optional[int] = None) -> str:
        family = choose_family(context)
        candidates = self._candidates(family, context)
        if not candidates and family != "default":
            family = "default"
            candidates = self._candidates(family, context)
        if not candidates:
            return self._table.generic or GENERIC_REPLY

        pick = index if index is not None else self._rng.randrange(len(candidates))
        template = candidates[pick % len(candidates)]
        text = self._render(template, context)
        return text or self._table.generic or GENERIC_REPLY

    def _candidates(self, family: str, context: ConversationContext) -> List[FallbackTemplate]:
        templates = [
            t for t in self._table.families.get(family, ())
            if t.history is None or t.history == context.has_history
        ]
        plain = [t for t in templates if not t.topic_slot]
        slotted = [t for t in templates if t.topic_slot] if context.topics else []
        if slotted and (context.has_history or not plain):
            return slotted
        return plain

    def _render(self, template: FallbackTemplate, context: ConversationContext) -> str:
        level = context.knowledge_level
        values = {
            "topics": ", ".join(t.label for t in context.sorted_topics()),
            "level_phrase": self._table.level_phrases.get(
                level.value, self._table.level_phrases.get(KnowledgeLevel.INTERMEDIATE.value, "")
            ),
        }
        try:
            return template.text.format_map(values).strip()
        except (KeyError, IndexError, ValueError):
            logger.warning(
                "fallback.template_render_failed",
                extra={"extra": {"family": template.family, "template": template.text[:80]}},
            )
            return ""
