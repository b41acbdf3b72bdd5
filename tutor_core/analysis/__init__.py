from tutor_core.analysis.context_analyzer import ContextAnalyzer

__all__ = ["ContextAnalyzer"]
