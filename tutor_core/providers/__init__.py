"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供各厂商的具体实现 (groq_client、huggingface_client)。
"""

from typing import List, Optional, Sequence

from tutor_core.config.settings import settings
from tutor_core.providers.base import ProviderAdapter
from tutor_core.providers.groq_client import GroqClient
from tutor_core.providers.huggingface_client import HuggingFaceClient
from tutor_core.providers.registry import get_provider_config


def create_provider(name: str, cfg=None) -> ProviderAdapter:
    """根据名称创建 Provider 实例。"""

    cfg = cfg or settings
    config = get_provider_config(name)
    if config.name == "huggingface":
        return HuggingFaceClient(cfg, config)
    # groq 与 groq-deepseek 共用 OpenAI 兼容端点
    return GroqClient(cfg, config)


def create_provider_chain(cfg=None, order: Optional[Sequence[str]] = None) -> List[ProviderAdapter]:
    """按配置的优先级顺序创建全部 Provider。"""

    cfg = cfg or settings
    names = order if order is not None else getattr(cfg, "provider_order", ["groq", "groq-deepseek", "huggingface"])
    return [create_provider(n, cfg) for n in names]
