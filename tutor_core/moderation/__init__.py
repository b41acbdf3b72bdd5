"""用户输入的内容审核（声明式规则表）。"""

from tutor_core.moderation.engine import ModerationEngine, ModerationRule

__all__ = ["ModerationEngine", "ModerationRule"]
