"""
lms_progress/orm/module_progress.py
ModuleProgress - Per-(module, learner) progress tracking

One row per learner per module, holding:
- content_viewed: set of ContentItem ids the learner has opened
- completed_at: stamped once when the module first reaches 100%

Lifecycle:
- Created on first content view or first completion check
- content_viewed only grows (adding a present id is a no-op)
- completed_at is set at most once and never cleared
- Soft-deleted, never physically removed

Concurrency:
- version is an optimistic-lock counter. Writers update
  content_viewed with "WHERE version = <read version>" and bump it;
  a zero-row update means another writer got there first.
"""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from lms_progress.core.db_types import StringSet
from lms_progress.orm.base import BaseModel, SoftDeleteMixin


class ModuleProgress(SoftDeleteMixin, BaseModel):
    __tablename__ = "module_progress"

    module_id = Column(
        String(36),
        ForeignKey("modules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Module being tracked"
    )

    user_id = Column(
        String(36),
        nullable=False,
        index=True,
        comment="Learner the progress belongs to"
    )

    content_viewed = Column(
        StringSet,
        nullable=False,
        default=list,
        comment="Set of viewed content item ids"
    )

    completed_at = Column(
        DateTime,
        nullable=True,
        comment="First time the module reached 100% (never cleared)"
    )

    version = Column(
        Integer,
        nullable=False,
        default=1,
        comment="Optimistic-lock counter for content_viewed writes"
    )

    module = relationship("Module")

    __table_args__ = (
        UniqueConstraint(
            "module_id",
            "user_id",
            name="uq_module_progress_module_user"
        ),
        Index(
            "ix_module_progress_user_completed",
            "user_id",
            "completed_at"
        ),
    )

    def __repr__(self):
        return (
            f"<ModuleProgress("
            f"module_id={self.module_id}, "
            f"user_id={self.user_id}, "
            f"viewed={len(self.content_viewed or [])}, "
            f"completed={self.completed_at is not None})>"
        )

    def to_dict(self):
        return {
            "id": self.id,
            "module_id": self.module_id,
            "user_id": self.user_id,
            "content_viewed": list(self.content_viewed or []),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "version": self.version,
        }
