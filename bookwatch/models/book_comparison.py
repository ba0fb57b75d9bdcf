import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text, Index
from sqlalchemy.orm import relationship

from bookwatch.core.database import Base


class BookComparison(Base):
    """比对台账：每次比对追加一条，数值字段写入后不可修改"""
    __tablename__ = "book_comparison"

    id = Column(String(191), primary_key=True, default=lambda: str(uuid.uuid4()))
    bookId = Column(String(191), ForeignKey("book.id", ondelete="CASCADE"), nullable=False, index=True)

    comparisonDate = Column(DateTime, default=datetime.utcnow, nullable=False)
    # initial_import / periodic_recheck / baseline_change / manual_historical / test_import
    comparisonType = Column(String(32), nullable=False)

    # 本次运行的统计（快照，不是累加值）
    totalChanges = Column(Integer, nullable=False, default=0)
    changedParagraphs = Column(Integer, nullable=False, default=0)
    # [{"chapter_id": "...", "chapter_number": 3, "change_count": 2}, ...]
    chaptersAffected = Column(JSON, nullable=False, default=list)

    # 唯一允许事后修改的字段
    notes = Column(Text, nullable=True)

    createdAt = Column(DateTime, default=datetime.utcnow, nullable=False)

    book = relationship("Book", back_populates="comparisons")

    __table_args__ = (
        Index("idx_book_comparison_book_date", "bookId", "comparisonDate"),
    )

    def __repr__(self):
        return f"<BookComparison bookId={self.bookId} type={self.comparisonType} changes={self.totalChanges}>"
