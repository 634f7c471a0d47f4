from .base import Base, BaseModel, SoftDeleteMixin
from .course import Course
from .module import Module, MIGRATED_MODULE_MARKER
from .content_item import ContentItem
from .assignment import Assignment, Submission
from .module_progress import ModuleProgress


__all__ = [
    "Base",
    "BaseModel",
    "SoftDeleteMixin",
    "Course",
    "Module",
    "MIGRATED_MODULE_MARKER",
    "ContentItem",
    "Assignment",
    "Submission",
    "ModuleProgress",
]
