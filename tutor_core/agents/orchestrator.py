"""补全编排器。

一次请求的完整流程（由 flows.graph 中的 LangGraph 状态图驱动）：

1. 入站校验：消息非空、角色合法、长度限制、注入标记，失败同步抛出 ValidationError；
2. 审核最新一条用户消息，被拦截时直接返回固定话术（source="moderation"）；
3. 按固定优先级依次尝试 Provider，每个最多一次，单次尝试有超时上限，
   第一个成功者即返回（source="provider-N"）；
4. 全部失败时分析上下文并生成本地兜底回复（source="fallback"）；
5. 统一后处理（推理片段拆分 + 格式规范）；
6. 回复构造完成后在后台提交交互分析，不等待其结果。

编排器在请求之间不保留任何状态，可被多个线程同时调用。
"""

import logging
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from tutor_core.analysis.context_analyzer import ContextAnalyzer
from tutor_core.config.settings import settings
from tutor_core.domain.exceptions import BusinessError, RequestCancelledError
from tutor_core.domain.models import (
    ChatMessage,
    CompletionParams,
    ConversationContext,
    ErrorKind,
    ProviderResult,
    Reply,
)
from tutor_core.domain.validation import validate_messages
from tutor_core.fallback.generator import GENERIC_REPLY, FallbackGenerator, FallbackTable
from tutor_core.flows.graph import build_graph
from tutor_core.flows.state import CompletionState
from tutor_core.infrastructure.analytics.recorder import BackgroundDispatcher, InteractionRecorder
from tutor_core.infrastructure.logging.logger import logger
from tutor_core.moderation.engine import ModerationEngine
from tutor_core.postprocess.processor import ProcessedText, ResponsePostProcessor
from tutor_core.providers import create_provider_chain
from tutor_core.providers.base import ProviderAdapter

# 等待 Provider 返回时检查取消信号的间隔（秒）
CANCEL_POLL_INTERVAL = 0.05
# 默认线程池大小；排队中的尝试不计入超时
PROVIDER_WORKERS = 16
MISSING_API_KEY = "MISSING_API_KEY"

ChainWinner = Tuple[int, ProviderResult, ProcessedText]


class Orchestrator:
    """把审核、Provider 链、兜底与后处理串成一次请求。

    所有组件都由外部构造后注入；build_default_orchestrator() 提供基于配置的默认装配。
    """

    def __init__(
        self,
        moderation: ModerationEngine,
        analyzer: ContextAnalyzer,
        adapters: Sequence[ProviderAdapter],
        fallback: FallbackGenerator,
        postprocessor: Optional[ResponsePostProcessor] = None,
        *,
        attempt_timeout: float = 20.0,
        max_input_chars: int = 10000,
        fallback_enabled: bool = True,
        recorder: Optional[InteractionRecorder] = None,
        dispatcher: Optional[BackgroundDispatcher] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        """初始化编排器。

        Args:
            moderation: 审核引擎
            analyzer: 上下文分析器
            adapters: 按优先级排列的 Provider 适配器
            fallback: 本地兜底生成器
            postprocessor: 回答后处理器（可选，默认新建）
            attempt_timeout: 单个 Provider 尝试的超时上限（秒）
            max_input_chars: 最新用户消息的最大长度
            fallback_enabled: 为 False 时全部失败直接抛出 AllProvidersExhaustedError
            recorder: 交互分析记录器（可选，None 表示不记录）
            dispatcher: 后台任务执行器（可选）
            executor: 执行 Provider 调用的线程池（可选）
        """
        self.moderation = moderation
        self.analyzer = analyzer
        self.adapters: Tuple[ProviderAdapter, ...] = tuple(adapters)
        self.fallback = fallback
        self.postprocessor = postprocessor or ResponsePostProcessor()
        self.attempt_timeout = attempt_timeout
        self.max_input_chars = max_input_chars
        self.fallback_enabled = fallback_enabled
        self._recorder = recorder
        self._dispatcher = dispatcher or (BackgroundDispatcher() if recorder is not None else None)
        self._executor = executor or ThreadPoolExecutor(
            max_workers=PROVIDER_WORKERS,
            thread_name_prefix="tutor-provider",
        )
        for position, adapter in enumerate(self.adapters, start=1):
            if not adapter.configured:
                # 凭据只在构造时读取一次，缺失即在进程生命周期内不可用
                logger.warning(
                    "orchestrator.provider_unconfigured",
                    extra={"extra": {"position": position, "provider": adapter.name}},
                )
        self._graph = build_graph(self)

    def respond(
        self,
        messages: Sequence[Any],
        params: Optional[CompletionParams] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Reply:
        """处理一次补全请求并返回 Reply。

        Raises:
            ValidationError: 入站请求不合法（此时不会调用任何 Provider）。
            RequestCancelledError: 调用方通过 cancel_event 取消了请求。
            AllProvidersExhaustedError: 全部 Provider 失败且兜底被禁用。
        """
        start = time.monotonic()
        log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}"}

        validated = validate_messages(messages, self.max_input_chars)
        self.check_cancelled(cancel_event)
        log_ctx["messages"] = len(validated)
        self._log(logging.INFO, "orchestrator.start", log_ctx)

        state: CompletionState = {
            "messages": validated,
            "params": params or CompletionParams(),
            "cancel_event": cancel_event,
            "verdict": None,
            "attempts": [],
            "raw_text": None,
            "processed": None,
            "source_label": None,
            "model": None,
            "context": None,
            "reply": None,
        }
        result = self._graph.invoke(state)
        reply: Reply = result["reply"]

        latency = time.monotonic() - start
        self._log(
            logging.INFO,
            "orchestrator.reply",
            log_ctx,
            source=reply.source_label,
            model=reply.model,
            attempts=len(reply.attempts),
            latency=round(latency, 4),
        )
        if self._recorder is not None and self._dispatcher is not None:
            self._dispatcher.submit(self._recorder.record, validated, reply, latency)
        return reply

    # ---- Provider 链 ----

    def run_chain(
        self,
        messages: Sequence[ChatMessage],
        params: CompletionParams,
        cancel_event: Optional[threading.Event] = None,
    ) -> Tuple[List[ProviderResult], Optional[ChainWinner]]:
        """按优先级依次尝试每个 Provider，返回全部尝试记录与第一个成功者（若有）。"""

        attempts: List[ProviderResult] = []
        for position, adapter in enumerate(self.adapters, start=1):
            self.check_cancelled(cancel_event)
            result = self._attempt(adapter, messages, params, cancel_event)
            if result.success:
                processed = self.postprocessor.process(result.text)
                if processed.visible_text:
                    attempts.append(result)
                    self._log_attempt(position, result)
                    return attempts, (position, result, processed)
                result = ProviderResult(
                    provider=result.provider,
                    success=False,
                    error=ErrorKind.MALFORMED_RESPONSE,
                    latency=result.latency,
                    model=result.model,
                    message="EMPTY_VISIBLE_TEXT",
                )
            attempts.append(result)
            self._log_attempt(position, result)
        return attempts, None

    def _attempt(
        self,
        adapter: ProviderAdapter,
        messages: Sequence[ChatMessage],
        params: CompletionParams,
        cancel_event: Optional[threading.Event],
    ) -> ProviderResult:
        name = adapter.name
        if not adapter.configured:
            return ProviderResult(
                provider=name,
                success=False,
                error=ErrorKind.UNAUTHENTICATED,
                message=MISSING_API_KEY,
            )

        model = adapter.resolve_model(messages, params).provider_model
        # 超时从工作线程真正开始调用时计起，在线程池里排队的时间不算
        started: Dict[str, float] = {}

        def call() -> str:
            started["at"] = time.monotonic()
            return adapter.complete(messages, params)

        future = self._executor.submit(call)

        while True:
            timeout = CANCEL_POLL_INTERVAL
            start = started.get("at")
            if start is not None:
                remaining = start + self.attempt_timeout - time.monotonic()
                if remaining <= 0:
                    future.cancel()
                    return ProviderResult(
                        provider=name,
                        success=False,
                        error=ErrorKind.TIMEOUT,
                        latency=time.monotonic() - start,
                        model=model,
                        message=f"no response within {self.attempt_timeout}s",
                    )
                timeout = min(remaining, CANCEL_POLL_INTERVAL)
            done, _ = wait_futures([future], timeout=timeout)
            if done:
                break
            if cancel_event is not None and cancel_event.is_set():
                # 正在进行的 HTTP 调用无法中断，直接放弃其结果
                future.cancel()
                self.check_cancelled(cancel_event)

        latency = time.monotonic() - started["at"]
        try:
            text = future.result()
        except BusinessError as exc:
            return ProviderResult(
                provider=name,
                success=False,
                error=exc.kind or ErrorKind.MALFORMED_RESPONSE,
                latency=latency,
                model=model,
                message=f"{exc.code}: {exc.message}",
            )
        except Exception as exc:
            logger.exception(
                "orchestrator.adapter_crashed",
                extra={"extra": {"provider": name, "error": str(exc)}},
            )
            return ProviderResult(
                provider=name,
                success=False,
                error=ErrorKind.MALFORMED_RESPONSE,
                latency=latency,
                model=model,
                message=str(exc),
            )
        return ProviderResult(provider=name, success=True, text=text, latency=latency, model=model)

    # ---- 兜底 ----

    def generate_fallback(self, context: ConversationContext) -> str:
        try:
            text = self.fallback.generate(context)
        except Exception:
            logger.exception("orchestrator.fallback_failed", extra={"extra": context.summary()})
            return GENERIC_REPLY
        return text or GENERIC_REPLY

    @staticmethod
    def check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise RequestCancelledError("REQUEST_CANCELLED", "Request was cancelled by the caller", http_status=499)

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)
        if self._dispatcher is not None:
            self._dispatcher.shutdown(wait=wait)

    def _log_attempt(self, position: int, result: ProviderResult) -> None:
        if result.success:
            level = logging.INFO
        elif result.message == MISSING_API_KEY:
            # 构造时已告警过一次
            level = logging.DEBUG
        else:
            level = logging.WARNING
        self._log(
            level,
            "orchestrator.attempt",
            {},
            position=position,
            provider=result.provider,
            success=result.success,
            error=result.error.value if result.error else None,
            latency=round(result.latency, 4),
            detail=result.message,
        )

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})


def build_default_orchestrator(cfg=None) -> Orchestrator:
    """根据配置装配默认的编排器。"""

    cfg = cfg or settings
    analyzer = ContextAnalyzer(window=cfg.context_window)
    recorder = InteractionRecorder(cfg.log_dir, analyzer) if cfg.analytics_enabled else None
    return Orchestrator(
        moderation=ModerationEngine.from_yaml(),
        analyzer=analyzer,
        adapters=create_provider_chain(cfg),
        fallback=FallbackGenerator(FallbackTable.from_yaml(), rng=random.Random(cfg.fallback_seed)),
        attempt_timeout=cfg.attempt_timeout,
        max_input_chars=cfg.max_input_chars,
        fallback_enabled=cfg.fallback_enabled,
        recorder=recorder,
    )
