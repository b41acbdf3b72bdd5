"""会话上下文分析器。

只看最近 window 条消息中的用户消息，推断：
- topics: 话题标签（关键词类匹配）；
- emotional_tone: 情绪基调，覆盖顺序 frustrated > curious > confused > confident；
- knowledge_level: 进阶词汇与入门措辞的计数比较，不确定时为 intermediate；
- intent: 只看最新一条用户消息（严格问候匹配优先）。

这是尽力而为的分类器，但必须是确定性的：相同输入永远得到相同输出，
并且永不失败，最差也会落到 neutral / intermediate / other。
"""

import re
from typing import Iterable, List, Mapping, Sequence, Tuple, Union

from tutor_core.domain.models import (
    ChatMessage,
    ConversationContext,
    EmotionalTone,
    Intent,
    KnowledgeLevel,
    Topic,
)

DEFAULT_WINDOW = 6
ADVANCED_THRESHOLD = 3


def _rx(body: str) -> re.Pattern:
    return re.compile(body, re.IGNORECASE)


TOPIC_PATTERNS: Tuple[Tuple[Topic, re.Pattern], ...] = (
    (Topic.MATH, _rx(r"\b(math|maths|mathematics|calculus|algebra|geometry|trigonometry|statistics|equation|fractions?)\b")),
    (Topic.SCIENCE, _rx(r"\b(physics|chemistry|biology|science|lab|experiment|photosynthesis|atoms?|cells?)\b")),
    (Topic.PROGRAMMING, _rx(r"\b(code|coding|programming|javascript|python|react|api|database|algorithm)\b")),
    (Topic.WRITING, _rx(r"\b(write|writing|essay|grammar|literature|english|composition)\b")),
    (Topic.SOCIAL_STUDIES, _rx(r"\b(history|geography|social|politics|economics|culture)\b")),
    (Topic.CREATIVE_ARTS, _rx(r"\b(art|design|creative|music|visual|aesthetic|drawing|painting)\b")),
)

# 按覆盖顺序排列：靠前的基调一旦出现即胜出
TONE_PATTERNS: Tuple[Tuple[EmotionalTone, re.Pattern], ...] = (
    (EmotionalTone.FRUSTRATED, _rx(
        r"\b(frustrat\w*|stuck|give up|gave up|hate (this|it)|annoy\w*|so hard|too hard|impossible|not working|ugh)\b"
    )),
    (EmotionalTone.CURIOUS, _rx(
        r"\b(interesting|curious|wonder\w*|explore|learn more|fascinat\w*|tell me more)\b"
    )),
    (EmotionalTone.CONFUSED, _rx(
        r"\b(confus\w*|unclear|not sure|don'?t get|doesn'?t make sense|lost|"
        r"(do not|don'?t|can'?t|cannot|didn'?t|doesn'?t) understand)\b"
    )),
    (EmotionalTone.CONFIDENT, _rx(
        r"\b(understand|got it|makes sense|clear now|i see|easy)\b"
    )),
)

ADVANCED_TERMS = _rx(
    r"\b(algorithm|implementation|optimi[sz]ation|abstraction|polymorphism|derivative|integral|synthesis|"
    r"analysis|asymptotic|eigen\w*|recursion|complexity|theorem|differential|thermodynamics|quantum)\b"
)
NOVICE_TERMS = _rx(
    r"\b(what is|how do|basic|basics|simple|beginner|start|first time|new to|eli5|explain like)\b"
)

GREETING = _rx(
    r"^(hello|hi|hey|hiya|greetings|kumusta|good\s+(morning|afternoon|evening))(\s+there)?[\s\W]*$"
)
HELP_CUES = _rx(
    r"\b(help|assist|how do i|how to|can you|could you|explain|show me|solve|homework|assignment|stuck)\b"
)
CLARIFICATION_CUES = _rx(
    r"\b(what do you mean|clarify|confus\w*|don'?t get|(do not|don'?t|can'?t|cannot|didn'?t) understand|"
    r"unclear|not sure|meaning of|rephrase)\b"
)
ACKNOWLEDGMENT_CUES = _rx(
    r"\b(thanks|thank you|thx|got it|ok|okay|makes sense|cool|great|perfect|understood|i see)\b"
)
QUESTION_START = _rx(r"^(what|why|how|when|where|who|which|is|are|can|could|does|do|should)\b")

MessageLike = Union[ChatMessage, Mapping]


def _normalise(text: str) -> str:
    return text.replace("’", "'").strip()


def _coerce(message: MessageLike) -> ChatMessage:
    if isinstance(message, ChatMessage):
        return message
    return ChatMessage.from_dict(dict(message))


class ContextAnalyzer:
    """从会话历史推断 ConversationContext。"""

    def __init__(self, window: int = DEFAULT_WINDOW):
        self.window = max(1, window)

    def analyze(self, history: Sequence[MessageLike]) -> ConversationContext:
        messages = [_coerce(m) for m in history]
        recent = messages[-self.window:]
        user_texts = [_normalise(m.text) for m in recent if m.role == "user"]
        latest = user_texts[-1] if user_texts else ""

        return ConversationContext(
            topics=self._topics(user_texts),
            emotional_tone=self._tone(user_texts),
            knowledge_level=self._level(user_texts),
            intent=self.intent_of(latest),
            has_history=len(messages) > 1,
            is_question=self._is_question(latest),
        )

    @staticmethod
    def _topics(texts: Iterable[str]) -> frozenset:
        found = set()
        for text in texts:
            for topic, pattern in TOPIC_PATTERNS:
                if pattern.search(text):
                    found.add(topic)
        return frozenset(found)

    @staticmethod
    def _tone(texts: List[str]) -> EmotionalTone:
        for tone, pattern in TONE_PATTERNS:
            if any(pattern.search(t) for t in texts):
                return tone
        return EmotionalTone.NEUTRAL

    @staticmethod
    def _level(texts: Iterable[str]) -> KnowledgeLevel:
        advanced = novice = 0
        for text in texts:
            advanced += len(ADVANCED_TERMS.findall(text))
            novice += len(NOVICE_TERMS.findall(text))
        if advanced >= ADVANCED_THRESHOLD and advanced > novice:
            return KnowledgeLevel.ADVANCED
        if novice > advanced:
            return KnowledgeLevel.BEGINNER
        return KnowledgeLevel.INTERMEDIATE

    @staticmethod
    def intent_of(text: str) -> Intent:
        text = _normalise(text)
        if not text:
            return Intent.OTHER
        if GREETING.match(text):
            return Intent.GREETING
        if HELP_CUES.search(text):
            return Intent.HELP_REQUEST
        if CLARIFICATION_CUES.search(text):
            return Intent.CLARIFICATION
        if ACKNOWLEDGMENT_CUES.search(text):
            return Intent.ACKNOWLEDGMENT
        return Intent.OTHER

    @staticmethod
    def _is_question(text: str) -> bool:
        return "?" in text or bool(QUESTION_START.match(text))
