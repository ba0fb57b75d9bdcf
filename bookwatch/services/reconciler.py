import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from bookwatch.models import Paragraph
from bookwatch.schemas.paragraph import ChangeHistoryEntry
from bookwatch.services.word_diff import DiffSegment, diff_words, normalize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextComparison:
    has_changed: bool
    old_text: str
    new_text: str
    diff: Optional[list[DiffSegment]] = None


@dataclass(frozen=True)
class ReconcileResult:
    changed: bool
    history_entry: Optional[ChangeHistoryEntry] = None


def compare_texts(old_text: str, new_text: str) -> TextComparison:
    """比较两段文本（先去除首尾空白），变化时附带词级差异"""
    normalized_old = normalize(old_text)
    normalized_new = normalize(new_text)
    if normalized_old == normalized_new:
        return TextComparison(has_changed=False, old_text=normalized_old, new_text=normalized_new)
    return TextComparison(
        has_changed=True,
        old_text=normalized_old,
        new_text=normalized_new,
        diff=diff_words(normalized_old, normalized_new),
    )


def load_history(paragraph: Paragraph) -> list[ChangeHistoryEntry]:
    raw = paragraph.changeHistory if isinstance(paragraph.changeHistory, list) else []
    entries: list[ChangeHistoryEntry] = []
    for item in raw:
        try:
            entries.append(ChangeHistoryEntry.model_validate(item))
        except ValidationError:
            logger.warning("段落 %s 有一条无法解析的变更历史，已跳过", paragraph.id)
    return entries


def reconcile(paragraph: Paragraph, incoming_text: str, now: Optional[datetime] = None) -> ReconcileResult:
    """
    用新文本与段落的 latestText 对比，变化时写入段落：

    - 历史追加一条 {old_text: 当前 latestText, new_text: 新文本}，记录的是状态链而不是相对基线的差异
    - latestText 改为新文本，hasChanged 置为 True，刷新 updatedAt

    计数器由调用方负责。
    """
    comparison = compare_texts(paragraph.latestText, incoming_text)
    if not comparison.has_changed:
        return ReconcileResult(changed=False)

    now = now or datetime.utcnow()
    # 记录原样文本，保证历史链能与 baseText / latestText 逐字对上
    entry = ChangeHistoryEntry(date=now, old_text=paragraph.latestText, new_text=incoming_text)

    history = list(paragraph.changeHistory) if isinstance(paragraph.changeHistory, list) else []
    # JSON 列不跟踪原地修改，必须整体赋值
    paragraph.changeHistory = [*history, entry.model_dump(mode="json")]
    paragraph.latestText = incoming_text
    paragraph.hasChanged = True
    paragraph.updatedAt = now
    return ReconcileResult(changed=True, history_entry=entry)
