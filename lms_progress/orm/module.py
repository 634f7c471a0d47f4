"""
lms_progress/orm/module.py
Module model - Ordered, gatable unit of a course

Each course holds an ordered list of modules. A module contains:
- Content items (documents, videos, text) a learner views
- Assignments a learner submits

Sequential gating:
- requires_previous = True: locked until the preceding published module
  is completed by the learner
- requires_previous = False: always accessible (open module)

Key Design Decisions:
- order_index only carries RELATIVE order inside a course. Gaps are
  normal (soft-deleted modules keep their index), so neighbours are
  found with "nearest greater/smaller" lookups, never index +/- 1.
- Soft delete via deleted_at; modules are never physically removed.
- Drafts (is_published = False) are invisible to learners and are
  skipped by unlock gating.
"""
from sqlalchemy import Column, String, Text, Integer, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship
from lms_progress.orm.base import BaseModel, SoftDeleteMixin


MIGRATED_MODULE_MARKER = "migrated from existing content"


class Module(SoftDeleteMixin, BaseModel):
    """
    Module within a course.

    Fields:
    - id: Primary key
    - course_id: Parent course (FK)
    - title: Display name (1-200 chars)
    - description: Optional summary (up to 2000 chars)
    - order_index: Position in the course (ascending, lower = first)
    - is_published: Visible to learners when True
    - requires_previous: Sequential gating switch
    - deleted_at: Soft-delete tombstone

    Relationships:
    - course: Parent course
    - content_items: ContentItem rows attached to this module
    - assignments: Assignment rows attached to this module
    """
    __tablename__ = "modules"

    course_id = Column(
        String(36),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Reference to courses table"
    )

    title = Column(
        String(200),
        nullable=False,
        comment="Display name"
    )

    description = Column(
        Text,
        nullable=True,
        comment="Optional module summary"
    )

    order_index = Column(
        Integer,
        nullable=False,
        default=0,
        comment="Relative position in course (lower = first)"
    )

    is_published = Column(
        Boolean,
        nullable=False,
        default=False,
        comment="True when visible to learners"
    )

    requires_previous = Column(
        Boolean,
        nullable=False,
        default=True,
        comment="True when the preceding module must be completed first"
    )

    course = relationship("Course", back_populates="modules")

    content_items = relationship(
        "ContentItem",
        back_populates="module",
        order_by="ContentItem.order_index",
        lazy="selectin"
    )

    assignments = relationship(
        "Assignment",
        back_populates="module",
        lazy="selectin"
    )

    __table_args__ = (
        Index(
            "ix_modules_course_order",
            "course_id",
            "order_index"
        ),
    )

    def __repr__(self):
        return (
            f"<Module("
            f"id={self.id}, "
            f"course_id={self.course_id}, "
            f"order={self.order_index}, "
            f"published={self.is_published})>"
        )

    @property
    def is_migrated_default(self) -> bool:
        """True for the default module created by the content migration."""
        return bool(self.description and MIGRATED_MODULE_MARKER in self.description)

    def to_dict(self):
        """Convert model to dictionary for API responses"""
        return {
            "id": self.id,
            "course_id": self.course_id,
            "title": self.title,
            "description": self.description,
            "order_index": self.order_index,
            "is_published": self.is_published,
            "requires_previous": self.requires_previous,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
