"""回答后处理。

对任意 Provider（或兜底生成器）产出的文本做两件事：

1. 把内部“推理”片段（<think>…</think>、[thinking]…[/thinking]、
   以 "Reasoning:" 开头、"Answer:" 分隔的前缀段）与可见回答分离；
2. 规范结构化标记（列表符号、有序列表编号、标题空格、强调星号、
   代码围栏、空行），让下游渲染拿到一致的格式。

围栏代码块内部的内容原样保留。处理是幂等的：对可见文本再次处理结果不变。
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

_REASONING_BLOCKS = (
    re.compile(r"<think>(.*?)</think>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<thinking>(.*?)</thinking>", re.IGNORECASE | re.DOTALL),
    re.compile(r"\[thinking\](.*?)\[/thinking\]", re.IGNORECASE | re.DOTALL),
)
_STRAY_TAGS = re.compile(r"</?think(?:ing)?>|\[/?thinking\]", re.IGNORECASE)
_REASONING_PREFIX = re.compile(
    r"^\s*(?:reasoning|thought process)\s*:\s*(.*?)\n\s*(?:final answer|answer)\s*:[ \t]*\n?",
    re.IGNORECASE | re.DOTALL,
)

_FENCE = re.compile(r"^(\s*)(`{3,}|~{3,})(.*)$")
_RULE = re.compile(r"^\s*([*\-_])(?:\s*\1){2,}\s*$")
_HEADING = re.compile(r"^(#{1,6})(?=[A-Za-z])")
_BULLET = re.compile(r"^(\s*)(?:[*\-–]\s+|•\s*)(?=\S)")
# 只把一两位数当作序号，"2024. …" 这类年份开头的句子保持原样
_NUMBERED = re.compile(r"^(\d{1,2})[.)]\s+(?=\S)")
_ASTERISKS = re.compile(r"\*{3,}")
# 模型偶尔把内部使用的正则字面量（如 /^\s*$/gm）泄漏到回答中
_REGEX_ARTEFACT = re.compile(r"^\s*/\^.*\$/[gimsuy]*\s*$")

MAX_PASSES = 8


@dataclass(frozen=True)
class ProcessedText:
    visible_text: str
    reasoning_text: Optional[str] = None


class ResponsePostProcessor:
    """拆分推理片段并规范 Markdown 结构。无状态，可在并发请求间共享。"""

    def process(self, raw_text: Optional[str]) -> ProcessedText:
        # 规范化可能让新的推理前缀露出到开头（例如删掉了它前面的正则残留），循环到文本不再变化
        text = raw_text or ""
        segments: List[str] = []
        for _ in range(MAX_PASSES):
            visible, reasoning = self.split_reasoning(text)
            if reasoning:
                segments.append(reasoning)
            normalized = self.normalize(visible)
            if normalized == text:
                break
            text = normalized
        return ProcessedText(visible_text=text, reasoning_text="\n\n".join(segments) or None)

    @staticmethod
    def split_reasoning(text: str) -> Tuple[str, Optional[str]]:
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        segments: List[str] = []
        for pattern in _REASONING_BLOCKS:
            segments.extend(m.strip() for m in pattern.findall(text))
            text = pattern.sub("", text)
        text = _STRAY_TAGS.sub("", text)

        match = _REASONING_PREFIX.match(text)
        while match and text[match.end():].strip():
            segments.append(match.group(1).strip())
            text = text[match.end():]
            match = _REASONING_PREFIX.match(text)

        reasoning = "\n\n".join(s for s in segments if s)
        return text, reasoning or None

    @staticmethod
    def normalize(text: str) -> str:
        out: List[str] = []
        in_code = False
        in_list = False
        counter = 0
        blank_run = 0

        for raw in text.split("\n"):
            fence = _FENCE.match(raw)
            if fence:
                indent, marker, rest = fence.groups()
                ticks = "```" if marker.startswith("`") else "~~~"
                out.append(f"{indent}{ticks}{rest.rstrip()}")
                in_code = not in_code
                in_list = False
                blank_run = 0
                continue
            if in_code:
                out.append(raw)
                continue

            line = raw.rstrip()
            if _REGEX_ARTEFACT.match(line):
                continue
            if not line:
                blank_run += 1
                if blank_run == 1:
                    out.append("")
                continue
            blank_run = 0

            if _RULE.match(line):
                in_list = False
                out.append(line.strip())
                continue

            line = _HEADING.sub(r"\1 ", line)
            line = _BULLET.sub(r"\1- ", line)
            line = _ASTERISKS.sub("**", line)

            numbered = _NUMBERED.match(line)
            if numbered:
                counter = counter + 1 if in_list else 1
                in_list = True
                line = f"{counter}. {line[numbered.end():]}"
            elif not line[0].isspace():
                # 顶格的非列表行结束当前有序列表
                in_list = False
            out.append(line)

        return "\n".join(out).strip()
