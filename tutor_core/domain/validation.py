"""入站请求校验。

在调用任何 Provider 之前同步执行：消息列表非空、角色合法、
最新用户消息长度受限、不含脚本注入标记；同时去掉控制字符。
"""

import re
from typing import Any, Iterable, List, Union

from tutor_core.domain.exceptions import ValidationError
from tutor_core.domain.models import VALID_ROLES, ChatMessage, latest_user_message

INJECTION_PATTERNS = (
    re.compile(r"<\s*script\b", re.IGNORECASE),
    re.compile(r"javascript\s*:", re.IGNORECASE),
    re.compile(r"vbscript\s*:", re.IGNORECASE),
    re.compile(r"data\s*:\s*text/html", re.IGNORECASE),
    re.compile(r"<[^>]*\bon[a-z]+\s*=", re.IGNORECASE),
)

# 保留 \t \n \r，去掉其余 C0 控制字符与 DEL
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize_text(text: str) -> str:
    return _CONTROL_CHARS.sub("", text)


def _sanitize_message(message: ChatMessage) -> ChatMessage:
    if isinstance(message.content, str):
        return ChatMessage(role=message.role, content=sanitize_text(message.content))
    parts = []
    for part in message.content:
        if isinstance(part, dict) and part.get("type") == "text":
            part = {**part, "text": sanitize_text(str(part.get("text") or ""))}
        parts.append(part)
    return ChatMessage(role=message.role, content=tuple(parts))


def validate_messages(
    messages: Iterable[Union[ChatMessage, dict, Any]],
    max_input_chars: int = 10000,
) -> List[ChatMessage]:
    """校验并清洗消息列表，返回新的 ChatMessage 列表。

    Raises:
        ValidationError: 任一条件不满足时抛出，http_status 为 400。
    """

    if messages is None:
        raise ValidationError("EMPTY_MESSAGES", "messages must be a non-empty list")

    cleaned: List[ChatMessage] = []
    for index, item in enumerate(messages):
        if isinstance(item, dict):
            item = ChatMessage.from_dict(item)
        if not isinstance(item, ChatMessage):
            raise ValidationError("INVALID_MESSAGE", "each message must be an object", index=index)
        if item.role not in VALID_ROLES:
            raise ValidationError(
                "INVALID_ROLE",
                f"invalid role {item.role!r}",
                index=index,
                allowed=list(VALID_ROLES),
            )
        cleaned.append(_sanitize_message(item))

    if not cleaned:
        raise ValidationError("EMPTY_MESSAGES", "messages must be a non-empty list")

    latest = latest_user_message(cleaned)
    if latest is None:
        raise ValidationError("NO_USER_MESSAGE", "at least one user message is required")

    text = latest.text
    if len(text) > max_input_chars:
        raise ValidationError(
            "INPUT_TOO_LONG",
            f"message exceeds {max_input_chars} characters",
            length=len(text),
            limit=max_input_chars,
        )
    for pattern in INJECTION_PATTERNS:
        if pattern.search(text):
            raise ValidationError("UNSAFE_CONTENT", "message contains disallowed markup")
    return cleaned
