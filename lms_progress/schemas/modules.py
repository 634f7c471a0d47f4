"""
lms_progress/schemas/modules.py
Pydantic schemas for module authoring and maintenance operations
"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, field_validator


# ================= REQUEST SCHEMAS =================

class ModuleCreate(BaseModel):
    """
    Input for creating a module.

    Required: title
    Optional: description, requires_previous (gated by default)
    """
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    requires_previous: bool = True

    @field_validator('title')
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Ensure title is not empty after stripping"""
        if not v.strip():
            raise ValueError("Title is required")
        return v.strip()


class ModuleUpdate(BaseModel):
    """Partial update; omitted fields are left untouched."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    is_published: Optional[bool] = None
    requires_previous: Optional[bool] = None
    order_index: Optional[int] = Field(None, ge=0)

    @field_validator('title')
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not v.strip():
            raise ValueError("Title cannot be blank")
        return v.strip()


class ModuleReorder(BaseModel):
    """New order for a course's modules: position in the list becomes order_index."""
    module_ids: List[str] = Field(..., min_length=1)

    @field_validator('module_ids')
    @classmethod
    def validate_unique(cls, v: List[str]) -> List[str]:
        if len(set(v)) != len(v):
            raise ValueError("module_ids must not contain duplicates")
        return v


# ================= RESULT SCHEMAS =================

class MigrationStats(BaseModel):
    """Counters reported by the default-module content migration."""
    courses_processed: int = 0
    courses_skipped: int = 0
    courses_failed: int = 0
    modules_created: int = 0
    content_updated: int = 0
    assignments_updated: int = 0


class ModuleDeleteResult(BaseModel):
    message: str
    moved_count: int = 0


class ModuleStatusRow(BaseModel):
    id: str
    title: str
    order_index: int
    is_published: bool
    requires_previous: bool
    content_count: int = 0
    assignment_count: int = 0


class CourseStatusReport(BaseModel):
    course_id: str
    title: str
    code: Optional[str] = None
    modules: List[ModuleStatusRow] = Field(default_factory=list)


class PublishStatusReport(BaseModel):
    courses: List[CourseStatusReport] = Field(default_factory=list)
    unpublished: List[Dict[str, Any]] = Field(default_factory=list)


class ModulePublishResult(BaseModel):
    """Outcome of publishing/unpublishing a module."""
    module: Dict[str, Any]
    cascaded_count: int = 0
