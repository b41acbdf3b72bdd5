"""Provider 与模型配置。

本模块将“逻辑模型名”与“具体厂商模型名”解耦：

- 逻辑名（logical_name）：在代码里使用的统一名称，例如 "general"、"coding"。
- provider_model：厂商实际提供的模型 ID，例如 "llama-3.3-70b-versatile"。

调用方可以通过 CompletionParams.model 指定逻辑名；未指定时，
按 task_rules 根据最新一条用户消息推断任务类型，再映射到具体模型。
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple


@dataclass
class ModelConfig:
    """单个逻辑模型的配置。"""

    logical_name: str
    provider_model: str
    max_tokens: int
    default_temperature: float


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    models: Dict[str, ModelConfig]
    default_model: str
    # (逻辑模型名, 正则) 按顺序匹配，第一个命中的生效
    task_rules: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def resolve(self, logical_name: Optional[str], text: str = "") -> ModelConfig:
        """逻辑名优先；否则按任务规则推断；都不满足时回退默认模型。"""

        if logical_name and logical_name in self.models:
            return self.models[logical_name]
        lowered = (text or "").lower()
        for name, pattern in self.task_rules:
            if name in self.models and re.search(pattern, lowered):
                return self.models[name]
        return self.models[self.default_model]


_CODING = r"\b(code|program|function|class|variable|debug|algorithm|javascript|python|react|typescript|css|html)\b"
_ANALYSIS = r"\b(analy[sz]e|research|compare|evaluate|investigate|examine)\b|explain.*why|what.*causes|how.*works"
_WRITING = r"\b(write|essay|story|letter|email|article|blog|creative|compose|grammar|spelling|song|lyrics|poem|poetry)\b"
_STEM = r"\b(math|physics|chemistry|biology|calculus|algebra|equation|formula|scientific|theorem|hypothesis|experiment)\b"


# Groq 主力配置：快速通用模型，按任务类型切换 token 预算与温度
GROQ_CONFIG = ProviderConfig(
    name="groq",
    base_url="https://api.groq.com/openai/v1",
    models={
        "general": ModelConfig("general", "llama-3.3-70b-versatile", 4096, 0.7),
        "coding": ModelConfig("coding", "llama-3.3-70b-versatile", 8192, 0.3),
        "analysis": ModelConfig("analysis", "llama-3.3-70b-versatile", 6144, 0.4),
        "writing": ModelConfig("writing", "llama-3.3-70b-versatile", 4096, 0.8),
        "fast": ModelConfig("fast", "llama-3.1-8b-instant", 2048, 0.7),
    },
    default_model="general",
    task_rules=(("coding", _CODING), ("analysis", _ANALYSIS), ("writing", _WRITING)),
)

# 同一端点下的 DeepSeek 推理模型，作为第二顺位
GROQ_DEEPSEEK_CONFIG = ProviderConfig(
    name="groq-deepseek",
    base_url="https://api.groq.com/openai/v1",
    models={
        "deepseek": ModelConfig("deepseek", "deepseek-r1-distill-llama-70b", 4096, 0.7),
    },
    default_model="deepseek",
)

# HuggingFace Inference：专业化模型，作为最后一个远端 Provider
HUGGINGFACE_CONFIG = ProviderConfig(
    name="huggingface",
    base_url="https://api-inference.huggingface.co/models",
    models={
        "stem": ModelConfig("stem", "microsoft/DeepSeek-R1-Distill-Qwen-32B", 4096, 0.7),
        "coding": ModelConfig("coding", "deepseek-ai/DeepSeek-Coder-V2-Instruct-236B", 8192, 0.3),
        "writing": ModelConfig("writing", "Qwen/Qwen2.5-72B-Instruct", 4096, 0.8),
        "analysis": ModelConfig("analysis", "microsoft/DeepSeek-R1-Distill-Qwen-32B", 6144, 0.4),
        "general": ModelConfig("general", "Qwen/Qwen2.5-72B-Instruct", 2048, 0.7),
    },
    default_model="general",
    task_rules=(("stem", _STEM), ("coding", _CODING), ("analysis", _ANALYSIS), ("writing", _WRITING)),
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "groq": GROQ_CONFIG,
    "groq-deepseek": GROQ_DEEPSEEK_CONFIG,
    "huggingface": HUGGINGFACE_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")
