"""Groq Provider 适配器（OpenAI 兼容 chat/completions）。

本模块负责：

1. 接收统一的 ChatMessage 列表与 CompletionParams。
2. 按逻辑模型名或任务类型选择具体模型，构造请求 payload。
3. 调用 HTTP 接口，把鉴权/限流/超时/网络错误映射为统一异常。
4. 从响应 JSON 中取出第一条回答文本。

同一个类既服务主力模型（groq），也服务同端点下的 DeepSeek 模型
（groq-deepseek），差别只在 ProviderConfig。
"""

from typing import Any, Dict, List, Optional, Sequence

import httpx

from tutor_core.domain.exceptions import (
    ApiError,
    AuthenticationError,
    MalformedResponseError,
    NetworkError,
    ProviderTimeoutError,
    RateLimitError,
)
from tutor_core.domain.models import ChatMessage, CompletionParams, latest_user_message
from tutor_core.providers.registry import GROQ_CONFIG, ModelConfig, ProviderConfig


class GroqClient:
    """Groq 提供方客户端实现。

    - name: Provider 名称（供日志/健康检查使用）。
    - complete: 对外统一调用入口，返回回答文本。
    """

    def __init__(self, settings, config: ProviderConfig = GROQ_CONFIG, name: Optional[str] = None):
        # Settings 里包含 base_url、api_key、超时等配置
        self._settings = settings
        self._config = config
        self.name = name or config.name
        # 凭证只在构造时读取一次：缺失即视为整个进程生命周期内不可用
        self._api_key = getattr(settings, "groq_api_key", None)

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def resolve_model(self, messages: Sequence[ChatMessage], params: CompletionParams) -> ModelConfig:
        last = latest_user_message(messages)
        return self._config.resolve(params.model, last.text if last else "")

    def complete(self, messages: Sequence[ChatMessage], params: CompletionParams) -> str:
        """执行一次非流式对话调用。

        步骤：
        1. 读取模型配置（logical model -> provider model）。
        2. 构造 HTTP 请求 payload。
        3. 发送请求并把超时/限流/鉴权/服务端错误映射为统一异常。
        4. 解析出回答文本，解析失败时抛 MalformedResponseError。
        """

        if not self.configured:
            raise AuthenticationError(code="MISSING_API_KEY", message="GROQ_API_KEY not set", provider=self.name)
        model_cfg = self.resolve_model(messages, params)
        payload = self._build_payload(messages, params, model_cfg)
        base = getattr(self._settings, "groq_base_url", None) or self._config.base_url
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(
                    f"{base}/chat/completions",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(code="TIMEOUT", message=str(e) or "Groq request timeout", provider=self.name)
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接被拒绝等
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        if resp.status_code in (401, 403):
            raise AuthenticationError(
                code="UNAUTHENTICATED", message="Groq rejected credentials", http_status=resp.status_code
            )
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="Groq rate limit", http_status=429)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponseError(code="BAD_JSON", message=f"Groq returned invalid JSON: {e}")
        return self._parse_response(data)

    # ---- 辅助方法 ----

    def _build_payload(
        self, messages: Sequence[ChatMessage], params: CompletionParams, model_cfg: ModelConfig
    ) -> Dict[str, Any]:
        return {
            "model": model_cfg.provider_model,
            "messages": [self._message_to_payload(m) for m in messages],
            "temperature": params.temperature if params.temperature is not None else model_cfg.default_temperature,
            "max_tokens": params.max_tokens or model_cfg.max_tokens,
            "stream": False,
        }

    @staticmethod
    def _message_to_payload(message: ChatMessage) -> Dict[str, Any]:
        # 图像片段不再被 Groq 支持，只发送文本
        text = message.text
        if not isinstance(message.content, str) and not text:
            text = "Please analyze the provided content."
        return {"role": message.role, "content": text}

    def _parse_response(self, data: Any) -> str:
        if not isinstance(data, dict):
            raise MalformedResponseError(code="BAD_SHAPE", message="Groq response is not an object")
        choices: List[Dict[str, Any]] = data.get("choices") or []
        if not choices:
            raise MalformedResponseError(code="NO_CHOICES", message="No response choices returned from Groq")
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = (message or {}).get("content")
        if not isinstance(content, str) or not content.strip():
            raise MalformedResponseError(code="EMPTY_CONTENT", message="Groq returned empty content")
        return content.strip()
