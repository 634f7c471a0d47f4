"""
lms_progress/orm/base.py
Base model for all ORM models
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def generate_id() -> str:
    return str(uuid.uuid4())


class BaseModel(Base):
    """
    Abstract base model with common fields.
    All ORM models inherit from this.

    Ids are opaque strings so records created elsewhere (imports,
    fixtures, other services) can keep their own identifiers.
    """
    __abstract__ = True

    id = Column(
        String(36),
        primary_key=True,
        default=generate_id,
        index=True
    )

    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
        comment="Timestamp when record was created"
    )

    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
        comment="Timestamp when record was last updated"
    )


class SoftDeleteMixin:
    """
    Tombstone column shared by every soft-deletable table.

    A row is live while deleted_at is NULL. Rows are never physically
    removed by the application.
    """
    deleted_at = Column(
        DateTime,
        nullable=True,
        index=True,
        comment="Soft-delete timestamp (NULL = live)"
    )

    @classmethod
    def not_deleted(cls):
        """Filter clause selecting live rows only."""
        return cls.deleted_at.is_(None)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(self, when: datetime = None):
        if self.deleted_at is None:
            self.deleted_at = when or datetime.utcnow()
