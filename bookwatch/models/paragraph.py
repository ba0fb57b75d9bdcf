from sqlalchemy import Column, String, Text, DateTime, ForeignKey, JSON, Integer, Boolean, Index
from sqlalchemy.dialects.mysql import LONGTEXT
from sqlalchemy.orm import relationship
from bookwatch.core.database import Base
import uuid
from datetime import datetime


class Paragraph(Base):
    __tablename__ = "paragraph"
    __table_args__ = (
        Index("idx_paragraph_chapter_refcode", "chapterId", "refcode"),
    )

    id = Column(String(191), primary_key=True, default=lambda: str(uuid.uuid4()))
    chapterId = Column(String(191), ForeignKey("chapter.id", ondelete="CASCADE"), nullable=False, index=True)

    # 创建时的位置，仅供展示，不能用于跨版本匹配
    paragraphNumber = Column(Integer, nullable=False)
    # 稳定的外部引用代码（例如 "DTG 46.1"），跨版本匹配的唯一依据
    refcode = Column(String(64), nullable=True, index=True)

    # 基线文本：只在切换基线版本时改写
    baseText = Column(Text().with_variant(LONGTEXT, "mysql"), nullable=False)
    # 最新已知文本：每次检测到变化时改写
    latestText = Column(Text().with_variant(LONGTEXT, "mysql"), nullable=False)
    hasChanged = Column(Boolean, default=False, nullable=False)

    # 变更历史（只追加），元素格式:
    # {"schema_version": 1, "date": "2024-01-01T00:00:00", "old_text": "...", "new_text": "..."}
    changeHistory = Column(JSON, nullable=False, default=list)

    createdAt = Column(DateTime, default=datetime.utcnow, nullable=False)
    updatedAt = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # 关系
    chapter = relationship("Chapter", back_populates="paragraphs")
    snapshots = relationship("VersionSnapshot", back_populates="paragraph", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Paragraph {self.refcode or self.paragraphNumber}>"
