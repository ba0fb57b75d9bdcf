from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from bookwatch.models import Book, Chapter
from bookwatch.services.aligner import ComparisonResult


def apply_counters(db: Session, book: Book, result: ComparisonResult, now: Optional[datetime] = None) -> None:
    """
    把一次对齐的变化数累加到章节与书籍上（累加，不覆盖）。

    使用单条 UPDATE ... SET x = x + n，由数据库保证原子性；
    没有变化的运行只刷新 lastCheckDate，不动计数器。
    """
    now = now or datetime.utcnow()
    db.flush()

    for change in result.chapters:
        if change.change_count <= 0:
            continue
        db.execute(
            update(Chapter)
            .where(Chapter.id == change.chapter_id)
            .values(changeCount=Chapter.changeCount + change.change_count, updatedAt=now)
            .execution_options(synchronize_session=False)
        )
        cached = db.get(Chapter, change.chapter_id)
        if cached is not None:
            db.expire(cached)

    values: dict = {"lastCheckDate": now, "updatedAt": now}
    if result.total_changes > 0:
        values["totalChanges"] = Book.totalChanges + result.total_changes
    db.execute(
        update(Book)
        .where(Book.id == book.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.expire(book)
