"""内容审核引擎。

对单条用户文本做纯函数式分类，规则来自声明式规则表（rules.yaml）：

1. bypass 规则（测验/练习题生成）最先评估，命中即放行所有类别。
2. 收集全部命中的 block 规则，剔除被命中的 allow 规则覆盖的类别。
3. 剩余命中中优先级最高者生效（同优先级按表内顺序），返回类别与固定话术。

引擎永不抛出异常：空输入、非文本输入直接放行；内部异常记录日志后放行
（审核是闸门而非事实来源，失败时优先保证可用性）。
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Pattern, Sequence, Tuple

import yaml

from tutor_core.domain.models import ModerationCategory, ModerationVerdict
from tutor_core.infrastructure.logging.logger import logger

RULES_PATH = Path(__file__).resolve().parent / "rules.yaml"

_TERM_SUFFIX = r"(?:s|es|ed|ing|er|ers|y)?"

# 常见的字符替换写法，统一还原成字母
_LEET_TABLE = str.maketrans({"1": "i", "!": "i", "0": "o", "@": "a", "4": "a", "3": "e", "$": "s", "5": "s", "7": "t"})
_SPACED_LETTERS = re.compile(r"\b(?:[a-z][\s._-]){2,}[a-z]\b")
_REPEATED_LETTERS = re.compile(r"([a-z])\1{2,}")

_FILIPINO_WORDS = frozenset({"ba", "ka", "mo", "ko", "ang", "sa", "na", "ng", "para", "kung", "po", "naman"})
_ENGLISH_WORDS = frozenset({"the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "is", "are"})
_WORD = re.compile(r"[a-z']+")


def _compile_term(term: str) -> Pattern[str]:
    body = r"\s+".join(re.escape(part) for part in term.lower().split())
    return re.compile(rf"\b{body}{_TERM_SUFFIX}\b")


@dataclass(frozen=True)
class ModerationRule:
    """规则表中的一行。"""

    id: str
    kind: str
    category: Optional[ModerationCategory] = None
    priority: int = 0
    overrides: Tuple[ModerationCategory, ...] = ()
    min_matches: int = 1
    matchers: Tuple[Pattern[str], ...] = field(default_factory=tuple, repr=False)

    @classmethod
    def from_dict(cls, data: Mapping) -> "ModerationRule":
        kind = str(data.get("kind", "block")).lower()
        if kind not in ("bypass", "allow", "block"):
            raise ValueError(f"rule {data.get('id')!r}: unknown kind {kind!r}")
        category = data.get("category")
        if kind == "block" and not category:
            raise ValueError(f"rule {data.get('id')!r}: block rules need a category")
        matchers = [_compile_term(t) for t in data.get("terms") or []]
        matchers.extend(re.compile(p, re.IGNORECASE) for p in data.get("patterns") or [])
        if not matchers:
            raise ValueError(f"rule {data.get('id')!r}: no terms or patterns")
        return cls(
            id=str(data["id"]),
            kind=kind,
            category=ModerationCategory(category) if category else None,
            priority=int(data.get("priority", 0)),
            overrides=tuple(ModerationCategory(c) for c in data.get("overrides") or []),
            min_matches=max(1, int(data.get("min_matches", 1))),
            matchers=tuple(matchers),
        )

    def match_count(self, views: Sequence[str]) -> int:
        """命中的不同匹配器数量；任一文本视图命中即计数。"""

        return sum(1 for m in self.matchers if any(m.search(v) for v in views))

    def matches(self, views: Sequence[str]) -> bool:
        return self.match_count(views) >= self.min_matches


def text_views(text: str) -> Tuple[str, ...]:
    """原文小写视图 + 反混淆视图（字符替换还原、拆字合并、重复字母压缩）。"""

    lowered = text.lower()
    deobfuscated = lowered.translate(_LEET_TABLE)
    deobfuscated = _SPACED_LETTERS.sub(lambda m: re.sub(r"[\s._-]", "", m.group(0)), deobfuscated)
    deobfuscated = _REPEATED_LETTERS.sub(r"\1", deobfuscated)
    if deobfuscated == lowered:
        return (lowered,)
    return (lowered, deobfuscated)


def detect_language(text: str) -> str:
    words = _WORD.findall(text.lower())
    filipino = sum(1 for w in words if w in _FILIPINO_WORDS)
    english = sum(1 for w in words if w in _ENGLISH_WORDS)
    if filipino > english:
        return "filipino"
    if english > filipino:
        return "english"
    return "mixed"


class ModerationEngine:
    """基于规则表的内容审核器。规则表构造后只读，可在并发请求间共享。"""

    def __init__(self, rules: Iterable[ModerationRule], canned_replies: Mapping[str, str]):
        self._rules: List[ModerationRule] = list(rules)
        self._canned: Dict[ModerationCategory, str] = {
            ModerationCategory(k): v for k, v in canned_replies.items()
        }
        missing = [
            r.category for r in self._rules if r.kind == "block" and r.category not in self._canned
        ]
        if missing:
            raise ValueError(f"no canned reply for categories: {sorted({m.value for m in missing})}")

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "ModerationEngine":
        data = yaml.safe_load(Path(path or RULES_PATH).read_text(encoding="utf-8")) or {}
        rules = [ModerationRule.from_dict(item) for item in data.get("rules") or []]
        logger.info(
            "moderation.rules_loaded",
            extra={"extra": {"version": data.get("version"), "rules": len(rules)}},
        )
        return cls(rules, data.get("canned_replies") or {})

    @property
    def rules(self) -> Tuple[ModerationRule, ...]:
        return tuple(self._rules)

    def classify(self, text) -> ModerationVerdict:
        if not isinstance(text, str) or not text.strip():
            return ModerationVerdict(allowed=True)
        try:
            return self._classify(text)
        except Exception:
            logger.exception("moderation.classify_failed")
            return ModerationVerdict(allowed=True)

    def _classify(self, text: str) -> ModerationVerdict:
        views = text_views(text)
        language = detect_language(text)

        for rule in self._rules:
            if rule.kind == "bypass" and rule.matches(views):
                return ModerationVerdict(allowed=True, rule_id=rule.id, bypassed=True, detected_language=language)

        overridden = set()
        for rule in self._rules:
            if rule.kind == "allow" and rule.matches(views):
                overridden.update(rule.overrides)

        winner: Optional[ModerationRule] = None
        for rule in self._rules:
            if rule.kind != "block" or rule.category in overridden:
                continue
            if (winner is None or rule.priority > winner.priority) and rule.matches(views):
                winner = rule

        if winner is None:
            return ModerationVerdict(allowed=True, detected_language=language)
        return ModerationVerdict(
            allowed=False,
            category=winner.category,
            canned_reply=self._canned[winner.category],
            rule_id=winner.id,
            detected_language=language,
        )
