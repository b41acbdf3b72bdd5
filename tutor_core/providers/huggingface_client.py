"""HuggingFace Inference Provider 适配器。

接口与 OpenAI 风格不同，走 text-generation 端点：
- URL: {base_url}/{provider_model}
- 认证: Authorization: Bearer <api_key>
- 请求体: {"inputs": <ChatML 拼接的提示词>, "parameters": {...}}

响应可能是 [{"generated_text": "..."}] 或 {"generated_text": "..."}。
"""

from typing import Any, Dict, Sequence

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
from tutor_core.providers.registry import HUGGINGFACE_CONFIG, ModelConfig, ProviderConfig

STOP_SEQUENCES = ["<|im_end|>", "<|endoftext|>"]


class HuggingFaceClient:
    """HuggingFace Inference 客户端实现。"""

    def __init__(self, settings, config: ProviderConfig = HUGGINGFACE_CONFIG):
        self._settings = settings
        self._config = config
        self.name = config.name
        self._api_key = getattr(settings, "huggingface_api_key", None)

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def resolve_model(self, messages: Sequence[ChatMessage], params: CompletionParams) -> ModelConfig:
        last = latest_user_message(messages)
        return self._config.resolve(params.model, last.text if last else "")

    def complete(self, messages: Sequence[ChatMessage], params: CompletionParams) -> str:
        if not self.configured:
            raise AuthenticationError(
                code="MISSING_API_KEY", message="HUGGINGFACE_API_KEY not set", provider=self.name
            )
        model_cfg = self.resolve_model(messages, params)
        payload = self._build_payload(messages, params, model_cfg)
        base = getattr(self._settings, "huggingface_base_url", None) or self._config.base_url
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(
                    f"{base}/{model_cfg.provider_model}",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(code="TIMEOUT", message=str(e) or "HuggingFace request timeout")
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code in (401, 403):
            raise AuthenticationError(
                code="UNAUTHENTICATED", message="HuggingFace rejected credentials", http_status=resp.status_code
            )
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="HuggingFace rate limit", http_status=429)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponseError(code="BAD_JSON", message=f"HuggingFace returned invalid JSON: {e}")
        return self._parse_response(data)

    def _build_payload(
        self, messages: Sequence[ChatMessage], params: CompletionParams, model_cfg: ModelConfig
    ) -> Dict[str, Any]:
        return {
            "inputs": self.format_chatml(messages),
            "parameters": {
                "max_new_tokens": params.max_tokens or model_cfg.max_tokens,
                "temperature": params.temperature if params.temperature is not None else model_cfg.default_temperature,
                "return_full_text": False,
                "do_sample": True,
                "top_p": 0.95,
                "stop": STOP_SEQUENCES,
            },
        }

    @staticmethod
    def format_chatml(messages: Sequence[ChatMessage]) -> str:
        """把消息列表拼接成 ChatML 提示词，末尾留出 assistant 起始标记。"""

        parts = []
        for message in messages:
            text = message.text
            if not isinstance(message.content, str) and not text:
                text = "Please analyze the provided content."
            parts.append(f"<|im_start|>{message.role}\n{text}<|im_end|>\n")
        parts.append("<|im_start|>assistant\n")
        return "".join(parts)

    @staticmethod
    def _parse_response(data: Any) -> str:
        if isinstance(data, list) and data and isinstance(data[0], dict):
            text = data[0].get("generated_text")
        elif isinstance(data, dict):
            text = data.get("generated_text")
        else:
            text = None
        if not isinstance(text, str):
            raise MalformedResponseError(
                code="BAD_SHAPE", message="Unexpected response format from HuggingFace API"
            )
        for stop in STOP_SEQUENCES:
            text = text.split(stop, 1)[0]
        if not text.strip():
            raise MalformedResponseError(code="EMPTY_CONTENT", message="HuggingFace returned empty text")
        return text.strip()
