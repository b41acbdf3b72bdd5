"""Tutor Core 顶层包。

该包提供教学助手补全编排的核心实现，
包括配置加载、领域模型、内容审核、上下文分析、
多 Provider 适配与降级、本地兜底回复与回答后处理等能力。
"""

from tutor_core.agents.orchestrator import Orchestrator, build_default_orchestrator

__all__ = ["Orchestrator", "build_default_orchestrator"]
