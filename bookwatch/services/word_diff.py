"""
词级文本差异

把文本切成“单词 + 空白”两类 token 后做序列比对，
因此按顺序拼接 equal+insert 可以还原新文本，拼接 equal+delete 可以还原旧文本。
"""
import re
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Literal

DiffKind = Literal["equal", "insert", "delete"]

_TOKEN_RE = re.compile(r"\s+|\S+")


@dataclass(frozen=True)
class DiffSegment:
    kind: DiffKind
    text: str


def tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text or "")


def normalize(text: str | None) -> str:
    return (text or "").strip()


def texts_differ(old_text: str | None, new_text: str | None) -> bool:
    """判断两段文本是否有实质变化（忽略首尾空白）"""
    return normalize(old_text) != normalize(new_text)


def _append(segments: list[DiffSegment], kind: DiffKind, text: str) -> None:
    if not text:
        return
    if segments and segments[-1].kind == kind:
        segments[-1] = DiffSegment(kind, segments[-1].text + text)
    else:
        segments.append(DiffSegment(kind, text))


def diff_words(old_text: str, new_text: str) -> list[DiffSegment]:
    old_text = old_text or ""
    new_text = new_text or ""

    if old_text == new_text:
        return [DiffSegment("equal", new_text)]
    if not old_text:
        return [DiffSegment("insert", new_text)]
    if not new_text:
        return [DiffSegment("delete", old_text)]

    old_tokens = tokenize(old_text)
    new_tokens = tokenize(new_text)
    # autojunk 会随输入长度改变匹配结果，关闭以保证确定性
    matcher = SequenceMatcher(None, old_tokens, new_tokens, autojunk=False)

    segments: list[DiffSegment] = []
    for op, i1, i2, j1, j2 in matcher.get_opcodes():
        if op == "equal":
            _append(segments, "equal", "".join(new_tokens[j1:j2]))
        elif op == "delete":
            _append(segments, "delete", "".join(old_tokens[i1:i2]))
        elif op == "insert":
            _append(segments, "insert", "".join(new_tokens[j1:j2]))
        else:
            _append(segments, "delete", "".join(old_tokens[i1:i2]))
            _append(segments, "insert", "".join(new_tokens[j1:j2]))
    return segments


def count_words(segments: list[DiffSegment], kind: DiffKind) -> int:
    return sum(len(seg.text.split()) for seg in segments if seg.kind == kind)
