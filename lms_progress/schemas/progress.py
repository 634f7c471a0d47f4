"""
lms_progress/schemas/progress.py
Pydantic schemas for module progress and unlock results

These are the shapes returned by the progress engine to calling
request handlers. Field names are snake_case; handlers choose their
own wire casing.
"""
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field


class ModuleStatus(str, Enum):
    """
    Learner-facing module state.

    - LOCKED: gated behind an incomplete preceding module
    - AVAILABLE: unlocked, nothing done yet
    - IN_PROGRESS: unlocked, progress > 0
    - COMPLETED: completion stamped (permanent)
    """
    LOCKED = "locked"
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class UnlockedModuleInfo(BaseModel):
    """Module that became reachable because its predecessor was just completed."""
    id: str
    title: str


class ModuleProgressResult(BaseModel):
    """
    Progress of one learner through one module.

    unlocked_module is only present on the call that moved the module
    to Complete AND found a gated successor.
    """
    progress: int = Field(..., ge=0, description="Weighted completion percentage")
    is_complete: bool = Field(..., description="True when progress >= 100")
    viewed_count: int = Field(..., ge=0, description="Distinct content items viewed")
    total_content: int = Field(..., ge=0, description="Published, live content items")
    submitted_count: int = Field(..., ge=0, description="Distinct assignments submitted")
    total_assignments: int = Field(..., ge=0, description="Published, live assignments")
    unlocked_module: Optional[UnlockedModuleInfo] = None

    class Config:
        json_schema_extra = {
            "example": {
                "progress": 50,
                "is_complete": False,
                "viewed_count": 2,
                "total_content": 4,
                "submitted_count": 1,
                "total_assignments": 2,
                "unlocked_module": None,
            }
        }


class ModuleUnlockInfo(BaseModel):
    """Unlock decision for one module and learner."""
    is_unlocked: bool
    status: ModuleStatus
    progress: int = Field(0, ge=0)
    unlock_message: Optional[str] = None
    prerequisite_module_id: Optional[str] = None
    prerequisite_module_title: Optional[str] = None


class ModuleOverview(BaseModel):
    """One row of a learner's course module list."""
    id: str
    title: str
    description: Optional[str] = None
    order_index: int
    content_count: int = 0
    assignment_count: int = 0
    progress: int = 0
    status: ModuleStatus = ModuleStatus.AVAILABLE
    is_unlocked: bool = True
    unlock_message: Optional[str] = None
    prerequisite_module_id: Optional[str] = None
    prerequisite_module_title: Optional[str] = None


class CourseModulesOverview(BaseModel):
    """All published modules of a course for one learner, plus course progress."""
    course_id: str
    modules: List[ModuleOverview] = Field(default_factory=list)
    course_progress: int = Field(0, ge=0, description="Mean progress over unlocked modules")
