from sqlalchemy import Column, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.mysql import LONGTEXT
from sqlalchemy.orm import relationship
from bookwatch.core.database import Base
import uuid
from datetime import datetime


class VersionSnapshot(Base):
    """某个版本中某个段落的文本快照（写入后不再修改）"""
    __tablename__ = "version_snapshot"
    __table_args__ = (
        UniqueConstraint("versionId", "paragraphId", name="uniq_version_snapshot_paragraph"),
    )

    id = Column(String(191), primary_key=True, default=lambda: str(uuid.uuid4()))
    versionId = Column(String(191), ForeignKey("book_version.id", ondelete="CASCADE"), nullable=False, index=True)
    paragraphId = Column(String(191), ForeignKey("paragraph.id", ondelete="CASCADE"), nullable=False, index=True)
    paragraphText = Column(Text().with_variant(LONGTEXT, "mysql"), nullable=False)

    createdAt = Column(DateTime, default=datetime.utcnow, nullable=False)

    version = relationship("BookVersion", back_populates="snapshots")
    paragraph = relationship("Paragraph", back_populates="snapshots")

    def __repr__(self):
        return f"<VersionSnapshot version={self.versionId} paragraph={self.paragraphId}>"
