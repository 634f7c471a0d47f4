"""
lms_progress/services/module_progress_service.py
Module progress engine

Tracks a learner's way through one module:
- which content items were viewed
- the weighted completion percentage
- the one-time completion stamp
- which gated module the completion unlocks

Progress formula (adaptive weighting):
- content AND assignments: 50% content viewed + 50% assignments submitted
- content only: 100% content viewed
- assignments only: 100% assignments submitted
- neither: 0 (an empty module is never complete)

Percentages are rounded half-up, so 66.5 -> 67 and 0.5 -> 1.
"""
import logging
import math
from datetime import datetime
from typing import Optional

from sqlalchemy import select, func, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from lms_progress.config.settings import settings
from lms_progress.exceptions import TransientStorageError
from lms_progress.orm.assignment import Assignment, Submission
from lms_progress.orm.content_item import ContentItem
from lms_progress.orm.module import Module
from lms_progress.schemas.progress import ModuleProgressResult, UnlockedModuleInfo
from lms_progress.services import progress_repository
from lms_progress.services.progress_repository import ModuleProgressRecord, storage_errors

logger = logging.getLogger(__name__)


CONTENT_WEIGHT = 50
ASSIGNMENT_WEIGHT = 50


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def compute_module_progress(
    viewed_count: int,
    total_content: int,
    submitted_count: int,
    total_assignments: int,
    cap: Optional[bool] = None
) -> int:
    """
    Weighted completion percentage for one module.

    viewed_count is the size of the learner's viewed set and is not
    filtered to currently published content, so it can exceed
    total_content. With cap enabled (settings.CAP_MODULE_PROGRESS by
    default) the result is clamped to 100.
    """
    if cap is None:
        cap = settings.CAP_MODULE_PROGRESS

    has_content = total_content > 0
    has_assignments = total_assignments > 0

    if has_content and has_assignments:
        content_progress = (viewed_count / total_content) * CONTENT_WEIGHT
        assignment_progress = (submitted_count / total_assignments) * ASSIGNMENT_WEIGHT
        progress = round_half_up(content_progress + assignment_progress)
    elif has_content:
        progress = round_half_up((viewed_count / total_content) * 100)
    elif has_assignments:
        progress = round_half_up((submitted_count / total_assignments) * 100)
    else:
        progress = 0

    if cap:
        progress = min(progress, 100)
    return progress


# ================= COUNTS =================

async def count_published_content(db: AsyncSession, module_id: str) -> int:
    result = await db.execute(
        select(func.count(ContentItem.id)).where(
            and_(
                ContentItem.module_id == module_id,
                ContentItem.is_published == True,
                ContentItem.not_deleted()
            )
        )
    )
    return result.scalar() or 0


async def count_published_assignments(db: AsyncSession, module_id: str) -> int:
    result = await db.execute(
        select(func.count(Assignment.id)).where(
            and_(
                Assignment.module_id == module_id,
                Assignment.is_published == True,
                Assignment.not_deleted()
            )
        )
    )
    return result.scalar() or 0


async def count_submitted_assignments(db: AsyncSession, module_id: str, user_id: str) -> int:
    """Distinct published assignments of the module with at least one submission by the learner."""
    result = await db.execute(
        select(func.count(func.distinct(Submission.assignment_id)))
        .join(Assignment, Assignment.id == Submission.assignment_id)
        .where(
            and_(
                Assignment.module_id == module_id,
                Assignment.is_published == True,
                Assignment.not_deleted(),
                Submission.student_id == user_id
            )
        )
    )
    return result.scalar() or 0


def _build_result(
    record: ModuleProgressRecord,
    total_content: int,
    submitted_count: int,
    total_assignments: int
) -> ModuleProgressResult:
    viewed_count = len(record.content_viewed)
    progress = compute_module_progress(
        viewed_count, total_content, submitted_count, total_assignments
    )
    return ModuleProgressResult(
        progress=progress,
        is_complete=progress >= 100,
        viewed_count=viewed_count,
        total_content=total_content,
        submitted_count=submitted_count,
        total_assignments=total_assignments,
    )


# ================= READS =================

@storage_errors
async def calculate_module_progress(
    db: AsyncSession,
    module_id: str,
    user_id: str
) -> ModuleProgressResult:
    """
    Current progress of a learner in a module. Read-only.

    A learner with no progress row is at 0 viewed, not an error.
    """
    record = await progress_repository.load_progress(db, module_id, user_id)
    if record is None:
        record = ModuleProgressRecord.empty(module_id, user_id)

    total_content = await count_published_content(db, module_id)
    total_assignments = await count_published_assignments(db, module_id)
    submitted_count = await count_submitted_assignments(db, module_id, user_id)

    return _build_result(record, total_content, submitted_count, total_assignments)


async def is_content_viewed(
    db: AsyncSession,
    module_id: str,
    user_id: str,
    content_id: str
) -> bool:
    record = await progress_repository.load_progress(db, module_id, user_id)
    return record is not None and content_id in record.content_viewed


@storage_errors
async def get_next_module_to_unlock(
    db: AsyncSession,
    module_id: str
) -> Optional[UnlockedModuleInfo]:
    """
    Module that completing module_id unlocks, if any.

    The successor is the published, live module of the same course with
    the smallest order_index greater than the current one. It is only
    reported when it is gated (requires_previous); an open successor was
    never locked.
    """
    result = await db.execute(
        select(Module.course_id, Module.order_index).where(
            Module.id == module_id,
            Module.not_deleted()
        )
    )
    current = result.first()
    if current is None:
        return None

    result = await db.execute(
        select(Module.id, Module.title, Module.requires_previous)
        .where(
            and_(
                Module.course_id == current.course_id,
                Module.order_index > current.order_index,
                Module.is_published == True,
                Module.not_deleted()
            )
        )
        .order_by(Module.order_index.asc(), Module.created_at.asc(), Module.id.asc())
        .limit(1)
    )
    successor = result.first()

    if successor is None or not successor.requires_previous:
        return None
    return UnlockedModuleInfo(id=successor.id, title=successor.title)


# ================= WRITES =================

async def _find_unlocked_module(db: AsyncSession, module_id: str) -> Optional[UnlockedModuleInfo]:
    """Successor lookup after completion. Failures are logged and reported as no unlock."""
    try:
        return await get_next_module_to_unlock(db, module_id)
    except Exception as e:
        logger.error(
            f"Unlock lookup failed after completing module {module_id}: {str(e)}",
            exc_info=True
        )
        try:
            await db.rollback()
        except SQLAlchemyError as rollback_error:
            logger.error(f"Rollback after failed unlock lookup also failed: {str(rollback_error)}")
        return None


async def _complete_and_unlock(
    db: AsyncSession,
    module_id: str,
    user_id: str,
    result: ModuleProgressResult
) -> ModuleProgressResult:
    try:
        newly_completed = await progress_repository.mark_completed(
            db, module_id, user_id, datetime.utcnow()
        )
    except TransientStorageError:
        await db.rollback()
        raise
    await _commit(db)

    if not newly_completed:
        return result

    logger.info(f"Module completed: module={module_id} user={user_id}")

    unlocked = await _find_unlocked_module(db, module_id)
    if unlocked:
        logger.info(f"Module unlocked: module={unlocked.id} user={user_id} (after {module_id})")
        result.unlocked_module = unlocked
    return result


async def _commit(db: AsyncSession):
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Commit of module progress failed: {str(e)}")
        raise TransientStorageError("Failed to save module progress") from e


async def mark_content_viewed(
    db: AsyncSession,
    module_id: str,
    user_id: str,
    content_id: str
) -> ModuleProgressResult:
    """
    Record that a learner viewed a content item.

    Idempotent: viewing the same item again returns the current progress
    without any completion side effects. When the view pushes the module
    to 100%, completion is stamped (once) and the gated successor, if
    any, is reported as unlocked_module.

    Raises:
        TransientStorageError: storage failed; the whole call may be retried
        ConcurrencyConflictError: the row kept changing under us
    """
    try:
        newly_added = await progress_repository.add_viewed_content(
            db, module_id, user_id, content_id
        )
    except TransientStorageError:
        await db.rollback()
        raise
    await _commit(db)

    result = await calculate_module_progress(db, module_id, user_id)
    if not newly_added:
        return result

    logger.debug(
        f"Content viewed: module={module_id} user={user_id} content={content_id} "
        f"progress={result.progress}"
    )

    if result.is_complete:
        return await _complete_and_unlock(db, module_id, user_id, result)
    return result


async def check_and_update_module_completion(
    db: AsyncSession,
    module_id: str,
    user_id: str
) -> ModuleProgressResult:
    """
    Re-evaluate completion without a content view (e.g. after a submission).

    Stamps completed_at if the module just reached 100% and reports the
    unlocked successor only on that transition.
    """
    result = await calculate_module_progress(db, module_id, user_id)
    if not result.is_complete:
        return result

    return await _complete_and_unlock(db, module_id, user_id, result)
