from sqlalchemy import Column, String, DateTime, Integer, Boolean
from sqlalchemy.orm import relationship
from bookwatch.core.database import Base
import uuid
from datetime import datetime


class Book(Base):
    __tablename__ = "book"

    id = Column(String(191), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(255), nullable=False)
    # 对外的唯一书籍代码（例如 "DTG"），也是段落 refcode 的前缀
    code = Column(String(64), nullable=False, unique=True, index=True)
    # 向内容提供方请求时使用的代码（测试种子书与 code 不同）
    providerCode = Column(String(64), nullable=True)
    language = Column(String(16), nullable=False, default="es")
    isTestSeed = Column(Boolean, default=False, nullable=False)

    # 累加计数器：每次比对只增不减
    totalChanges = Column(Integer, default=0, nullable=False)
    lastCheckDate = Column(DateTime, nullable=True)
    importedAt = Column(DateTime, default=datetime.utcnow, nullable=False)

    createdAt = Column(DateTime, default=datetime.utcnow, nullable=False)
    updatedAt = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # 关系（删除书籍时级联删除全部下级数据）
    chapters = relationship(
        "Chapter", back_populates="book", cascade="all, delete-orphan", order_by="Chapter.number"
    )
    versions = relationship(
        "BookVersion", back_populates="book", cascade="all, delete-orphan", order_by="BookVersion.versionNumber"
    )
    comparisons = relationship("BookComparison", back_populates="book", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Book {self.code}>"
