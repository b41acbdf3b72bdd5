"""入站请求结构（pydantic）。"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ChatMessageIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: Literal["system", "user", "assistant"]
    content: Union[str, List[Dict[str, Any]]]


class ChatCompletionRequest(BaseModel):
    """OpenAI 风格的补全请求体：{messages, model?, temperature?, max_tokens?}。"""

    model_config = ConfigDict(extra="ignore")

    messages: List[ChatMessageIn] = Field(min_length=1)
    model: Optional[str] = Field(default=None, description="逻辑模型名，如 general / coding / writing")
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, ge=1, le=32768)
