"""
lms_progress/orm/course.py
Course model - top-level container of ordered modules
"""
from sqlalchemy import Column, String, Text
from sqlalchemy.orm import relationship
from lms_progress.orm.base import BaseModel, SoftDeleteMixin


class Course(SoftDeleteMixin, BaseModel):
    __tablename__ = "courses"

    title = Column(String(200), nullable=False)
    code = Column(String(50), nullable=True, index=True)
    description = Column(Text, nullable=True)

    modules = relationship(
        "Module",
        back_populates="course",
        order_by="Module.order_index",
        lazy="selectin"
    )

    def __repr__(self):
        return f"<Course(id={self.id}, code={self.code}, title={self.title})>"

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "code": self.code,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
        }
