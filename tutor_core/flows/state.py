"""State definition for the completion graph."""

from __future__ import annotations

import threading
from typing import List, Optional, TypedDict

from tutor_core.domain.models import (
    ChatMessage,
    CompletionParams,
    ConversationContext,
    ModerationVerdict,
    ProviderResult,
    Reply,
)
from tutor_core.postprocess.processor import ProcessedText


class CompletionState(TypedDict, total=False):
    """State shared across LangGraph nodes for a single request."""

    messages: List[ChatMessage]
    params: CompletionParams
    cancel_event: Optional[threading.Event]
    verdict: Optional[ModerationVerdict]
    attempts: List[ProviderResult]
    raw_text: Optional[str]
    processed: Optional[ProcessedText]
    source_label: Optional[str]
    model: Optional[str]
    context: Optional[ConversationContext]
    reply: Optional[Reply]
