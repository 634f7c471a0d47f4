"""
lms_progress/services/module_unlock_service.py
Module lock/unlock decisions

Unlock state is always derived from stored progress, never trusted from
the caller. Rules, in order:

1. Module missing from the course (or deleted) -> locked, "Module not found"
2. Learner already completed it -> completed, progress 100
3. requires_previous is off -> unlocked
4. No earlier published module -> unlocked (first module)
5. Preceding published module completed -> unlocked
6. Otherwise -> locked behind the preceding module

"Preceding" means the published, live module with the largest smaller
order_index. Drafts and deleted modules never gate anything, and gaps
in order_index are expected.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import Row, select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from lms_progress.exceptions import NotFoundError, ErrorCode
from lms_progress.orm.assignment import Assignment, Submission
from lms_progress.orm.content_item import ContentItem
from lms_progress.orm.course import Course
from lms_progress.orm.module import Module
from lms_progress.schemas.progress import (
    ModuleStatus,
    ModuleUnlockInfo,
    ModuleOverview,
    CourseModulesOverview,
)
from lms_progress.services import progress_repository
from lms_progress.services.module_progress_service import (
    calculate_module_progress,
    compute_module_progress,
    round_half_up,
)
from lms_progress.services.progress_repository import storage_errors

logger = logging.getLogger(__name__)


def _open_info(progress: int) -> ModuleUnlockInfo:
    return ModuleUnlockInfo(
        is_unlocked=True,
        status=ModuleStatus.IN_PROGRESS if progress > 0 else ModuleStatus.AVAILABLE,
        progress=progress,
    )


def _completed_info() -> ModuleUnlockInfo:
    return ModuleUnlockInfo(
        is_unlocked=True,
        status=ModuleStatus.COMPLETED,
        progress=100,
    )


def _locked_info(prerequisite_id: str, prerequisite_title: str) -> ModuleUnlockInfo:
    return ModuleUnlockInfo(
        is_unlocked=False,
        status=ModuleStatus.LOCKED,
        progress=0,
        unlock_message=f'Complete "{prerequisite_title}" to unlock',
        prerequisite_module_id=prerequisite_id,
        prerequisite_module_title=prerequisite_title,
    )


async def is_module_completed(db: AsyncSession, module_id: str, user_id: str) -> bool:
    record = await progress_repository.load_progress(db, module_id, user_id)
    return record is not None and record.is_completed


@storage_errors
async def get_previous_module(
    db: AsyncSession,
    course_id: str,
    order_index: int
) -> Optional[Row]:
    """Published, live module immediately before order_index (id, title), or None."""
    result = await db.execute(
        select(Module.id, Module.title)
        .where(
            and_(
                Module.course_id == course_id,
                Module.order_index < order_index,
                Module.is_published == True,
                Module.not_deleted()
            )
        )
        .order_by(Module.order_index.desc(), Module.created_at.desc(), Module.id.desc())
        .limit(1)
    )
    return result.first()


@storage_errors
async def is_module_unlocked(
    db: AsyncSession,
    module_id: str,
    user_id: str,
    course_id: str
) -> ModuleUnlockInfo:
    """Whether the learner may open module_id in course_id right now."""
    result = await db.execute(
        select(Module.id, Module.title, Module.order_index, Module.requires_previous).where(
            Module.id == module_id,
            Module.course_id == course_id,
            Module.not_deleted()
        )
    )
    module = result.first()

    if module is None:
        return ModuleUnlockInfo(
            is_unlocked=False,
            status=ModuleStatus.LOCKED,
            progress=0,
            unlock_message="Module not found",
        )

    if await is_module_completed(db, module_id, user_id):
        return _completed_info()

    progress = (await calculate_module_progress(db, module_id, user_id)).progress

    if not module.requires_previous:
        return _open_info(progress)

    previous = await get_previous_module(db, course_id, module.order_index)
    if previous is None:
        return _open_info(progress)

    if await is_module_completed(db, previous.id, user_id):
        return _open_info(progress)

    return _locked_info(previous.id, previous.title)


# ================= BULK =================

async def _counts_by_module(db: AsyncSession, model, module_ids: List[str]) -> Dict[str, int]:
    result = await db.execute(
        select(model.module_id, func.count(model.id))
        .where(
            and_(
                model.module_id.in_(module_ids),
                model.is_published == True,
                model.not_deleted()
            )
        )
        .group_by(model.module_id)
    )
    return {module_id: count for module_id, count in result.all()}


async def _submitted_by_module(db: AsyncSession, user_id: str, module_ids: List[str]) -> Dict[str, int]:
    result = await db.execute(
        select(Assignment.module_id, func.count(func.distinct(Submission.assignment_id)))
        .join(Assignment, Assignment.id == Submission.assignment_id)
        .where(
            and_(
                Assignment.module_id.in_(module_ids),
                Assignment.is_published == True,
                Assignment.not_deleted(),
                Submission.student_id == user_id
            )
        )
        .group_by(Assignment.module_id)
    )
    return {module_id: count for module_id, count in result.all()}


@storage_errors
async def _build_overview_rows(
    db: AsyncSession,
    course_id: str,
    user_id: str
) -> List[ModuleOverview]:
    """
    Unlock info for every published module of a course in a fixed number
    of queries, whatever the module count.

    Produces the same decisions as is_module_unlocked for each module.
    """
    result = await db.execute(
        select(
            Module.id,
            Module.title,
            Module.description,
            Module.order_index,
            Module.requires_previous,
        )
        .where(
            and_(
                Module.course_id == course_id,
                Module.is_published == True,
                Module.not_deleted()
            )
        )
        .order_by(Module.order_index.asc(), Module.created_at.asc(), Module.id.asc())
    )
    modules = result.all()
    if not modules:
        return []

    module_ids = [m.id for m in modules]
    progress_map = await progress_repository.load_progress_for_modules(db, user_id, module_ids)
    content_counts = await _counts_by_module(db, ContentItem, module_ids)
    assignment_counts = await _counts_by_module(db, Assignment, module_ids)
    submitted_counts = await _submitted_by_module(db, user_id, module_ids)

    rows: List[ModuleOverview] = []
    # Last module with a strictly smaller order_index seen so far
    previous = None
    pending_previous = None

    for index, module in enumerate(modules):
        if index > 0 and modules[index - 1].order_index < module.order_index:
            previous = pending_previous

        record = progress_map.get(module.id)
        content_count = content_counts.get(module.id, 0)
        assignment_count = assignment_counts.get(module.id, 0)
        viewed_count = len(record.content_viewed) if record else 0

        progress = compute_module_progress(
            viewed_count,
            content_count,
            submitted_counts.get(module.id, 0),
            assignment_count,
        )

        if record is not None and record.is_completed:
            info = _completed_info()
        elif not module.requires_previous or previous is None:
            info = _open_info(progress)
        else:
            previous_record = progress_map.get(previous.id)
            if previous_record is not None and previous_record.is_completed:
                info = _open_info(progress)
            else:
                info = _locked_info(previous.id, previous.title)

        rows.append(ModuleOverview(
            id=module.id,
            title=module.title,
            description=module.description,
            order_index=module.order_index,
            content_count=content_count,
            assignment_count=assignment_count,
            **info.model_dump(),
        ))
        pending_previous = module

    return rows


async def get_modules_unlock_info(
    db: AsyncSession,
    course_id: str,
    user_id: str
) -> Dict[str, ModuleUnlockInfo]:
    """Unlock info for all published modules of a course, keyed by module id in course order."""
    rows = await _build_overview_rows(db, course_id, user_id)
    return {
        row.id: ModuleUnlockInfo(
            is_unlocked=row.is_unlocked,
            status=row.status,
            progress=row.progress,
            unlock_message=row.unlock_message,
            prerequisite_module_id=row.prerequisite_module_id,
            prerequisite_module_title=row.prerequisite_module_title,
        )
        for row in rows
    }


def calculate_course_progress(unlock_infos) -> int:
    """
    Course progress: rounded mean progress of the unlocked modules.

    Locked modules are left out entirely; 0 when nothing is unlocked.
    """
    if isinstance(unlock_infos, dict):
        unlock_infos = unlock_infos.values()

    unlocked = [info.progress for info in unlock_infos if info.is_unlocked]
    if not unlocked:
        return 0
    return round_half_up(sum(unlocked) / len(unlocked))


async def get_course_modules_overview(
    db: AsyncSession,
    course_id: str,
    user_id: str
) -> CourseModulesOverview:
    """
    Learner's module list for a course with per-module progress and lock
    state, plus course progress.

    Raises:
        NotFoundError: course does not exist or is deleted
    """
    result = await db.execute(
        select(Course.id).where(Course.id == course_id, Course.not_deleted())
    )
    if result.first() is None:
        raise NotFoundError("Course", course_id, code=ErrorCode.COURSE_NOT_FOUND)

    rows = await _build_overview_rows(db, course_id, user_id)
    course_progress = calculate_course_progress(rows)

    logger.debug(
        f"Course overview: course={course_id} user={user_id} "
        f"modules={len(rows)} progress={course_progress}"
    )

    return CourseModulesOverview(
        course_id=course_id,
        modules=rows,
        course_progress=course_progress,
    )

