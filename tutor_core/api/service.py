"""对外 API 服务模块。

提供简化的函数接口供上层应用（HTTP 路由、CLI 等）调用：

- chat_completion(payload): 处理一次补全请求，返回稳定结构的 dict；
- health_status(probe=False): 汇报各 Provider 的配置与探测状态。
"""

import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from tutor_core.agents.orchestrator import Orchestrator, build_default_orchestrator
from tutor_core.api.schemas import ChatCompletionRequest
from tutor_core.domain.exceptions import BusinessError
from tutor_core.domain.models import (
    SOURCE_FALLBACK,
    SOURCE_MODERATION,
    ChatMessage,
    CompletionParams,
    ErrorKind,
    Reply,
    latest_user_message,
)
from tutor_core.infrastructure.logging.logger import logger
from tutor_core.providers.base import ProviderAdapter

PROBE_MESSAGES = (ChatMessage(role="user", content="ping"),)
PROBE_PARAMS = CompletionParams(max_tokens=1)

_SOURCE_MODELS = {
    SOURCE_FALLBACK: "local-fallback",
    SOURCE_MODERATION: "moderation",
}


class HealthMonitor:
    """记录每个 Provider 最近一次探测结果。仅供运维使用，不参与编排路径。"""

    def __init__(self, adapters: Sequence[ProviderAdapter]):
        self._adapters = tuple(adapters)
        self._lock = threading.Lock()
        self._probes: Dict[str, Dict[str, Any]] = {
            a.name: {"last_probe_ok": None, "last_probe_at": None, "last_error": None} for a in self._adapters
        }

    def probe(self) -> None:
        for adapter in self._adapters:
            if not adapter.configured:
                continue
            ok, error = True, None
            try:
                adapter.complete(PROBE_MESSAGES, PROBE_PARAMS)
            except BusinessError as exc:
                ok = False
                kind = exc.kind.value if exc.kind else exc.code
                error = f"{kind}: {exc.message}"
            except Exception as exc:
                logger.exception("health.probe_crashed", extra={"extra": {"provider": adapter.name}})
                ok = False
                error = f"{ErrorKind.MALFORMED_RESPONSE.value}: {exc}"
            with self._lock:
                self._probes[adapter.name] = {
                    "last_probe_ok": ok,
                    "last_probe_at": datetime.now(timezone.utc).isoformat(),
                    "last_error": error,
                }
            logger.info("health.probe", extra={"extra": {"provider": adapter.name, "ok": ok, "error": error}})

    def status(self, probe: bool = False) -> List[Dict[str, Any]]:
        if probe:
            self.probe()
        report = []
        for adapter in self._adapters:
            with self._lock:
                last = dict(self._probes.get(adapter.name) or {})
            report.append(
                {
                    "name": adapter.name,
                    "model": adapter.resolve_model((), CompletionParams()).provider_model,
                    "configured": adapter.configured,
                    "last_probe_ok": last.get("last_probe_ok"),
                    "last_probe_at": last.get("last_probe_at"),
                    "last_error": last.get("last_error"),
                }
            )
        return report


_orchestrator: Optional[Orchestrator] = None
_health: Optional[HealthMonitor] = None


def get_default_orchestrator() -> Orchestrator:
    """获取默认编排器实例（单例）。"""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_default_orchestrator()
    return _orchestrator


def get_health_monitor() -> HealthMonitor:
    global _health
    if _health is None:
        _health = HealthMonitor(get_default_orchestrator().adapters)
    return _health


def _error_payload(error: str, code: str, http_status: int, **details: Any) -> Dict[str, Any]:
    return {
        "success": False,
        "error": error,
        "details": {"code": code, "http_status": http_status, **details},
    }


def _reply_payload(reply: Reply, messages: Sequence[ChatMessage]) -> Dict[str, Any]:
    latest = latest_user_message(messages)
    prompt_chars = len(latest.text) if latest else 0
    completion_chars = len(reply.visible_text)
    payload: Dict[str, Any] = {
        "success": True,
        "choices": [
            {
                "message": {"role": "assistant", "content": reply.visible_text},
                "finish_reason": "stop",
                "index": 0,
            }
        ],
        "model": reply.model or _SOURCE_MODELS.get(reply.source_label, reply.source_label),
        "source": reply.source_label,
        # 字符数近似，不做分词
        "usage": {
            "prompt_tokens": prompt_chars,
            "completion_tokens": completion_chars,
            "total_tokens": prompt_chars + completion_chars,
        },
    }
    if reply.reasoning_text:
        payload["reasoning"] = reply.reasoning_text
    return payload


def chat_completion(
    payload: Dict[str, Any],
    orchestrator: Optional[Orchestrator] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Dict[str, Any]:
    """处理一次补全请求。

    Args:
        payload: {messages, model?, temperature?, max_tokens?}
        orchestrator: 指定编排器（可选，默认单例）
        cancel_event: 调用方取消信号（可选）

    Returns:
        成功时 {success, choices, model, source, reasoning?, usage}；
        失败时 {success: False, error, details}。
    """
    try:
        request = ChatCompletionRequest.model_validate(payload or {})
    except PydanticValidationError as exc:
        errors = [{"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]} for e in exc.errors()]
        return _error_payload("Invalid request", "INVALID_REQUEST", 400, errors=errors)

    messages = [ChatMessage.from_dict(m.model_dump()) for m in request.messages]
    params = CompletionParams(
        model=request.model,
        temperature=request.temperature,
        max_tokens=request.max_tokens,
    )
    try:
        reply = (orchestrator or get_default_orchestrator()).respond(messages, params, cancel_event)
    except BusinessError as exc:
        logger.error(
            f"Chat completion failed: {exc.message}",
            extra={"extra": {"code": exc.code, "http_status": exc.http_status, **exc.extra}},
        )
        return _error_payload(exc.message, exc.code, exc.http_status, **exc.extra)
    return _reply_payload(reply, messages)


def health_status(probe: bool = False, monitor: Optional[HealthMonitor] = None) -> Dict[str, Any]:
    """汇报各 Provider 的健康状态。probe=True 时对已配置的 Provider 发起一次极小的调用。"""

    providers = (monitor or get_health_monitor()).status(probe=probe)
    return {
        "status": "ok" if any(p["configured"] for p in providers) else "degraded",
        "providers": providers,
    }
