"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置，优先级依次降低。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type

import yaml
from pydantic import Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("TUTOR_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class YamlConfigSource(PydanticBaseSettingsSource):
    """把 config.yaml 作为 pydantic-settings 的一个配置源。"""

    def __init__(self, settings_cls: Type[BaseSettings]):
        super().__init__(settings_cls)
        self._data = _load_config_from_yaml()

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        return self._data.get(field_name), field_name, False

    def __call__(self) -> Dict[str, Any]:
        fields = self.settings_cls.model_fields
        return {k: v for k, v in self._data.items() if k in fields and v is not None}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    provider_order: List[str] = Field(
        default_factory=lambda: ["groq", "groq-deepseek", "huggingface"],
        description="Provider 尝试顺序（固定优先级）",
    )

    # Groq（OpenAI 兼容接口）
    groq_api_key: Optional[str] = Field(default=None, description="Groq API 密钥")
    groq_base_url: str = Field(
        default="https://api.groq.com/openai/v1",
        description="Groq API 基础URL",
    )
    # HuggingFace Inference
    huggingface_api_key: Optional[str] = Field(default=None, description="HuggingFace API 密钥")
    huggingface_base_url: str = Field(
        default="https://api-inference.huggingface.co/models",
        description="HuggingFace Inference API 基础URL",
    )

    http_timeout: float = Field(default=15.0, ge=1.0, description="单次 HTTP 超时时间（秒）")
    attempt_timeout: float = Field(
        default=20.0,
        gt=0.0,
        description="编排器对单个 Provider 尝试的超时上限（秒）",
    )

    # ---- 审核 / 上下文 / 兜底 ----
    context_window: int = Field(default=6, ge=1, le=50, description="上下文分析窗口的消息条数")
    max_input_chars: int = Field(default=10000, ge=1, description="单条用户消息最大长度")
    fallback_enabled: bool = Field(default=True, description="所有 Provider 失败时是否启用本地兜底回复")
    fallback_seed: Optional[int] = Field(default=None, description="兜底模板选择的随机种子")

    # ---- 日志与分析 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_to_file: bool = Field(default=False, description="是否把 JSON 日志写入 log_dir")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")
    analytics_enabled: bool = Field(default=True, description="是否在后台记录交互分析")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("groq_api_key", "huggingface_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @field_validator("provider_order")
    @classmethod
    def validate_provider_order(cls, v: List[str]) -> List[str]:
        cleaned = [name.strip().lower() for name in v if name and name.strip()]
        if len(set(cleaned)) != len(cleaned):
            raise ValueError("provider_order contains duplicates")
        return cleaned

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSource(settings_cls),
            file_secret_settings,
        )


settings = Settings()
