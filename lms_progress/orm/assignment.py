"""
lms_progress/orm/assignment.py
Assignment and Submission models
"""
from datetime import datetime
from sqlalchemy import Column, String, Boolean, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from lms_progress.orm.base import BaseModel, SoftDeleteMixin


class Assignment(SoftDeleteMixin, BaseModel):
    """Gradeable unit of work, optionally attached to a module."""
    __tablename__ = "assignments"

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
    description = Column(Text, nullable=True)
    due_date = Column(DateTime, nullable=True)
    is_published = Column(Boolean, nullable=False, default=True)

    module = relationship("Module", back_populates="assignments")
    submissions = relationship("Submission", back_populates="assignment")

    __table_args__ = (
        Index("ix_assignment_module_published", "module_id", "is_published"),
    )

    def __repr__(self):
        return f"<Assignment(id={self.id}, module_id={self.module_id}, published={self.is_published})>"

    def to_dict(self):
        return {
            "id": self.id,
            "course_id": self.course_id,
            "module_id": self.module_id,
            "title": self.title,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "is_published": self.is_published,
        }


class Submission(BaseModel):
    """
    A learner's turned-in work for an assignment.

    Usually one per (assignment, student), but resubmissions are allowed;
    progress counts distinct assignments, not rows.
    """
    __tablename__ = "submissions"

    assignment_id = Column(
        String(36),
        ForeignKey("assignments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    student_id = Column(String(36), nullable=False, index=True)
    file_url = Column(String(500), nullable=True)
    submitted_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    assignment = relationship("Assignment", back_populates="submissions")

    __table_args__ = (
        Index("ix_submission_student_assignment", "student_id", "assignment_id"),
    )

    def __repr__(self):
        return f"<Submission(assignment_id={self.assignment_id}, student_id={self.student_id})>"
