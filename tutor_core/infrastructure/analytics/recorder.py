"""交互分析记录器。

每次请求结束后由编排器在后台提交，不阻塞主流程：
- InteractionRecorder 把一次交互的摘要（话题、情绪、水平、来源、耗时）
  以 JSON Lines 追加到 log_dir/interactions.jsonl，并写一条结构化日志；
- BackgroundDispatcher 在独立线程池上执行任务，失败只记日志，从不向调用方抛出。
"""

from __future__ import annotations

import json
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence

from tutor_core.domain.models import ChatMessage, Reply
from tutor_core.infrastructure.logging.logger import logger


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class InteractionRecorder:
    """把单次交互的关键信息追加到 JSONL 文件，便于离线分析。"""

    FILENAME = "interactions.jsonl"

    def __init__(self, log_dir: str | Path, analyzer=None):
        self.path = Path(log_dir) / self.FILENAME
        self._analyzer = analyzer
        self._lock = threading.Lock()

    def build_entry(self, messages: Sequence[ChatMessage], reply: Reply, latency: float) -> Dict[str, Any]:
        context = reply.context
        if context is None and self._analyzer is not None:
            context = self._analyzer.analyze(messages)
        entry: Dict[str, Any] = {
            "timestamp": _utcnow(),
            "source": reply.source_label,
            "model": reply.model,
            "latency": round(latency, 4),
            "message_count": len(messages),
            "attempts": [
                {
                    "provider": a.provider,
                    "success": a.success,
                    "error": a.error.value if a.error else None,
                    "latency": round(a.latency, 4),
                }
                for a in reply.attempts
            ],
            "has_reasoning": reply.reasoning_text is not None,
            "reply_chars": len(reply.visible_text),
        }
        if reply.verdict is not None:
            entry["moderation"] = {
                "allowed": reply.verdict.allowed,
                "category": reply.verdict.category.value if reply.verdict.category else None,
                "bypassed": reply.verdict.bypassed,
                "language": reply.verdict.detected_language,
            }
        if context is not None:
            entry.update(context.summary())
        return entry

    def record(self, messages: Sequence[ChatMessage], reply: Reply, latency: float) -> Dict[str, Any]:
        entry = self.build_entry(messages, reply, latency)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(entry, ensure_ascii=False) + "\n")
        logger.info(
            "analytics.recorded",
            extra={"extra": {k: entry.get(k) for k in ("source", "latency", "topics", "emotional_tone", "knowledge_level")}},
        )
        return entry


class BackgroundDispatcher:
    """Fire-and-forget 任务执行器。"""

    def __init__(self, executor: Optional[ThreadPoolExecutor] = None):
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="tutor-analytics")

    def submit(self, fn: Callable[..., Any], *args, **kwargs) -> Future:
        return self._executor.submit(self._run, fn, args, kwargs)

    @staticmethod
    def _run(fn: Callable[..., Any], args, kwargs) -> None:
        try:
            fn(*args, **kwargs)
        except Exception:
            logger.exception("analytics.task_failed", extra={"extra": {"task": getattr(fn, "__name__", repr(fn))}})

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
