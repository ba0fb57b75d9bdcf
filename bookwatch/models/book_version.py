"""
BookVersion 模型 - 书籍版本

每次导入、以及发现变化的复查都会追加一个版本；
同一本书任意时刻最多只有一个版本 isBaseline=True，作为后续比对的基线。
"""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Integer, Boolean, Date, Index
from sqlalchemy.orm import relationship
from bookwatch.core.database import Base
import uuid
from datetime import datetime


class BookVersion(Base):
    __tablename__ = "book_version"
    __table_args__ = (
        Index("idx_book_version_book_version", "bookId", "versionNumber", unique=True),
    )

    id = Column(String(191), primary_key=True, default=lambda: str(uuid.uuid4()))
    bookId = Column(String(191), ForeignKey("book.id", ondelete="CASCADE"), nullable=False, index=True)

    # 版本号（按书递增：1, 2, 3 ...）
    versionNumber = Column(Integer, nullable=False)

    # initial_import / periodic_recheck / manual_historical / test_seed
    sourceType = Column(String(32), nullable=False)
    isBaseline = Column(Boolean, default=False, nullable=False)

    # 纸质版本的出版日期（手动导入时填写）
    editionDate = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    importDate = Column(DateTime, default=datetime.utcnow, nullable=False)

    # 关系
    book = relationship("Book", back_populates="versions")
    snapshots = relationship("VersionSnapshot", back_populates="version", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<BookVersion {self.versionNumber} for Book {self.bookId}>"
