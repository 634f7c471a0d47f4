"""
lms_progress/orm/content_item.py
ContentItem - a piece of viewable material inside a module
"""
from sqlalchemy import Column, String, Integer, Boolean, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from lms_progress.orm.base import BaseModel, SoftDeleteMixin


class ContentItem(SoftDeleteMixin, BaseModel):
    """
    Viewable material (document, video, text page).

    module_id is nullable: content created before modules existed is
    attached to a default module by the content migration.
    """
    __tablename__ = "course_content"

    course_id = Column(
        String(36),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    module_id = Column(
        String(36),
        ForeignKey("modules.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    title = Column(String(255), nullable=False)
    content_type = Column(String(50), nullable=False, default="text")
    body = Column(Text, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)
    is_published = Column(Boolean, nullable=False, default=True)

    module = relationship("Module", back_populates="content_items")

    __table_args__ = (
        Index("ix_content_module_published", "module_id", "is_published"),
    )

    def __repr__(self):
        return f"<ContentItem(id={self.id}, module_id={self.module_id}, type={self.content_type})>"

    def to_dict(self):
        return {
            "id": self.id,
            "course_id": self.course_id,
            "module_id": self.module_id,
            "title": self.title,
            "content_type": self.content_type,
            "order_index": self.order_index,
            "is_published": self.is_published,
        }
