"""Provider 抽象接口。

编排器不直接依赖具体厂商的 HTTP 接口，而是依赖此协议：

- 每个厂商实现一个 ProviderAdapter（如 GroqClient、HuggingFaceClient）。
- 负责：把消息列表转成具体 API 请求，并把响应解析为纯文本。
- 失败时抛出 BusinessError 子类，异常的 kind 字段即统一的 ErrorKind。

适配器不得修改任何共享状态，除了返回结果之外没有其他副作用。
"""

from typing import Protocol, Sequence

from tutor_core.domain.models import ChatMessage, CompletionParams
from tutor_core.providers.registry import ModelConfig


class ProviderAdapter(Protocol):
    """LLM Provider 适配器协议。

    实现者需要提供：
    - name: Provider 名称，用于日志/健康检查。
    - configured: 是否配置了凭证；进程生命周期内不变。
    - resolve_model(messages, params): 本次调用会使用的模型配置。
    - complete(messages, params): 执行一次非流式对话调用，返回回答文本。
    """

    name: str

    @property
    def configured(self) -> bool:
        ...

    def resolve_model(self, messages: Sequence[ChatMessage], params: CompletionParams) -> ModelConfig:
        ...

    def complete(self, messages: Sequence[ChatMessage], params: CompletionParams) -> str:
        ...
