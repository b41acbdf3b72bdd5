"""统一的对话与结果数据模型。

本模块定义了编排流水线各组件之间共享的标准数据结构：

- ChatMessage: 一条对话消息（system/user/assistant）。
- CompletionParams: 调用 Provider 时的模型/温度/token 预算参数。
- ModerationVerdict / ConversationContext: 审核与上下文分析的结果视图。
- ProviderResult: 单次 Provider 调用的诊断记录。
- Reply: 一次请求最终返回给调用方的结果。

所有 Provider 适配器与编排器都只依赖这些模型，
各自负责与外部 JSON 之间的转换。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Sequence, Tuple, Union


# 消息角色类型（与 OpenAI 兼容接口的 role 字段对应）
Role = Literal["system", "user", "assistant"]

VALID_ROLES = ("system", "user", "assistant")

# 多模态内容：[{"type": "text", "text": "..."}, {"type": "image_url", ...}]
ContentPart = Dict[str, Any]
Content = Union[str, Sequence[ContentPart]]


@dataclass(frozen=True)
class ChatMessage:
    """一条对话消息，追加后不可变。

    - role: 消息角色。
    - content: 纯文本，或多模态内容片段列表。
    """

    role: Role
    content: Content

    @property
    def text(self) -> str:
        return content_text(self.content)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        content = data.get("content")
        if isinstance(content, list):
            content = tuple(dict(part) for part in content)
        return cls(role=data.get("role", "user"), content=content if content is not None else "")

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [dict(part) for part in self.content]}


def content_text(content: Any) -> str:
    """提取消息内容的文本视图：字符串原样返回，多模态取第一个 text 片段。"""

    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, (list, tuple)):
        for part in content:
            if isinstance(part, dict) and part.get("type") == "text":
                return str(part.get("text") or "")
        return ""
    return str(content)


def latest_user_message(messages: Sequence[ChatMessage]) -> Optional[ChatMessage]:
    for message in reversed(messages):
        if message.role == "user":
            return message
    return None


@dataclass(frozen=True)
class CompletionParams:
    """Provider 调用参数。

    model 为逻辑模型名（如 "general"、"coding"），None 表示由适配器自行选择；
    temperature / max_tokens 为 None 时使用模型配置中的默认值。
    """

    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


class ErrorKind(str, Enum):
    """Provider 失败的统一分类。"""

    UNAUTHENTICATED = "unauthenticated"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    MALFORMED_RESPONSE = "malformed_response"
    NETWORK_FAILURE = "network_failure"
    ALL_PROVIDERS_EXHAUSTED = "all_providers_exhausted"


class ModerationCategory(str, Enum):
    SEXUAL = "sexual"
    PROFANITY = "profanity"
    EXPLICIT = "explicit"


@dataclass(frozen=True)
class ModerationVerdict:
    """单条用户消息的审核结论。放行时不携带任何负载。"""

    allowed: bool
    category: Optional[ModerationCategory] = None
    canned_reply: Optional[str] = None
    rule_id: Optional[str] = None
    bypassed: bool = False
    detected_language: str = "mixed"


class Topic(str, Enum):
    MATH = "math"
    SCIENCE = "science"
    PROGRAMMING = "programming"
    WRITING = "writing"
    SOCIAL_STUDIES = "social_studies"
    CREATIVE_ARTS = "creative_arts"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


class EmotionalTone(str, Enum):
    FRUSTRATED = "frustrated"
    CURIOUS = "curious"
    CONFUSED = "confused"
    CONFIDENT = "confident"
    NEUTRAL = "neutral"


class KnowledgeLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class Intent(str, Enum):
    GREETING = "greeting"
    HELP_REQUEST = "help_request"
    CLARIFICATION = "clarification"
    ACKNOWLEDGMENT = "acknowledgment"
    OTHER = "other"


@dataclass(frozen=True)
class ConversationContext:
    """从最近若干条消息推断出的会话视图（不持久化）。"""

    topics: FrozenSet[Topic] = frozenset()
    emotional_tone: EmotionalTone = EmotionalTone.NEUTRAL
    knowledge_level: KnowledgeLevel = KnowledgeLevel.INTERMEDIATE
    intent: Intent = Intent.OTHER
    has_history: bool = False
    is_question: bool = False

    def sorted_topics(self) -> List[Topic]:
        # 按枚举声明顺序输出，保证模板填充结果稳定
        order = list(Topic)
        return sorted(self.topics, key=order.index)

    def summary(self) -> Dict[str, Any]:
        return {
            "topics": [t.value for t in self.sorted_topics()],
            "emotional_tone": self.emotional_tone.value,
            "knowledge_level": self.knowledge_level.value,
            "intent": self.intent.value,
        }


@dataclass(frozen=True)
class ProviderResult:
    """单次 Provider 调用的结果，仅在一次请求内保留用于诊断。"""

    provider: str
    success: bool
    text: Optional[str] = None
    error: Optional[ErrorKind] = None
    latency: float = 0.0
    model: Optional[str] = None
    message: Optional[str] = None


SourceLabel = str  # "provider-N" | "fallback" | "moderation"

SOURCE_FALLBACK = "fallback"
SOURCE_MODERATION = "moderation"


def provider_source_label(position: int) -> SourceLabel:
    """position 从 1 开始，对应优先级顺序。"""

    return f"provider-{position}"


@dataclass(frozen=True)
class Reply:
    """一次请求的最终产物，创建后不再修改。"""

    visible_text: str
    source_label: SourceLabel
    reasoning_text: Optional[str] = None
    model: Optional[str] = None
    attempts: Tuple[ProviderResult, ...] = field(default_factory=tuple)
    verdict: Optional[ModerationVerdict] = None
    context: Optional[ConversationContext] = None
