from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship
from bookwatch.core.database import Base
import uuid
from datetime import datetime


class Chapter(Base):
    __tablename__ = "chapter"
    __table_args__ = (
        UniqueConstraint("bookId", "number", name="uniq_chapter_book_number"),
    )

    id = Column(String(191), primary_key=True, default=lambda: str(uuid.uuid4()))
    bookId = Column(String(191), ForeignKey("book.id", ondelete="CASCADE"), nullable=False, index=True)
    # 章节序号在各版本间稳定，是章节级的匹配键
    number = Column(Integer, nullable=False)
    title = Column(String(500), nullable=False)
    changeCount = Column(Integer, default=0, nullable=False)

    createdAt = Column(DateTime, default=datetime.utcnow, nullable=False)
    updatedAt = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # 关系
    book = relationship("Book", back_populates="chapters")
    paragraphs = relationship(
        "Paragraph", back_populates="chapter", cascade="all, delete-orphan", order_by="Paragraph.paragraphNumber"
    )

    def __repr__(self):
        return f"<Chapter {self.number} of Book {self.bookId}>"
