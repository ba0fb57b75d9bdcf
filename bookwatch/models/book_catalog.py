from sqlalchemy import Column, String, DateTime, Integer, Boolean
from bookwatch.core.database import Base
import uuid
from datetime import datetime


class BookCatalogEntry(Base):
    """提供方书目：书籍代码与提供方内部 ID 的对应关系"""
    __tablename__ = "book_catalog"

    id = Column(String(191), primary_key=True, default=lambda: str(uuid.uuid4()))
    bookCode = Column(String(64), nullable=False, unique=True, index=True)
    providerBookId = Column(Integer, nullable=False)
    title = Column(String(255), nullable=False)
    language = Column(String(16), nullable=False, default="es")
    isActive = Column(Boolean, default=True, nullable=False)
    lastValidated = Column(DateTime, nullable=True)

    createdAt = Column(DateTime, default=datetime.utcnow, nullable=False)
    updatedAt = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<BookCatalogEntry {self.bookCode} -> {self.providerBookId}>"
