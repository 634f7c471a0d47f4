"""
lms_progress/services/module_service.py
Module authoring and operator maintenance

Authoring (instructor side):
- create_module: appended after the last live module
- update_module: partial update
- reorder_modules: list position becomes order_index
- publish_module: toggle visibility, optionally publishing the contents too
- delete_module: soft delete, moving or archiving what the module holds

Maintenance (operator side):
- get_publish_status_report
- set_modules_open
- migrate_content_to_modules / rollback_module_migration

Callers are expected to have checked that the acting user may edit the
course. Every write commits before returning.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel as SchemaModel
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import select, update, delete, func, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from lms_progress.exceptions import (
    ValidationError,
    NotFoundError,
    TransientStorageError,
    ErrorCode,
)
from lms_progress.orm.assignment import Assignment
from lms_progress.orm.content_item import ContentItem
from lms_progress.orm.course import Course
from lms_progress.orm.module import Module, MIGRATED_MODULE_MARKER
from lms_progress.orm.module_progress import ModuleProgress
from lms_progress.schemas.modules import (
    ModuleCreate,
    ModuleUpdate,
    ModuleReorder,
    ModuleDeleteResult,
    ModulePublishResult,
    ModuleStatusRow,
    CourseStatusReport,
    PublishStatusReport,
    MigrationStats,
)

logger = logging.getLogger(__name__)

DEFAULT_MODULE_TITLE = "Module 1"
DEFAULT_MODULE_DESCRIPTION = f"Default module ({MIGRATED_MODULE_MARKER})"


def _validate(schema, data: Union[SchemaModel, Dict[str, Any]]):
    if isinstance(data, schema):
        return data
    if isinstance(data, SchemaModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return schema.model_validate(data)
    except SchemaValidationError as e:
        raise ValidationError(
            "Validation failed",
            details={"errors": e.errors(include_url=False)}
        ) from e


async def _commit(db: AsyncSession, action: str):
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to {action}: {str(e)}")
        raise TransientStorageError(f"Failed to {action}") from e


async def _get_course(db: AsyncSession, course_id: str) -> Course:
    result = await db.execute(
        select(Course).where(Course.id == course_id, Course.not_deleted())
    )
    course = result.scalar_one_or_none()
    if course is None:
        raise NotFoundError("Course", course_id, code=ErrorCode.COURSE_NOT_FOUND)
    return course


async def _get_module(db: AsyncSession, course_id: str, module_id: str) -> Module:
    result = await db.execute(
        select(Module).where(
            Module.id == module_id,
            Module.course_id == course_id,
            Module.not_deleted()
        )
    )
    module = result.scalar_one_or_none()
    if module is None:
        raise NotFoundError("Module", module_id, code=ErrorCode.MODULE_NOT_FOUND)
    return module


# ================= AUTHORING =================

async def create_module(
    db: AsyncSession,
    course_id: str,
    data: Union[ModuleCreate, Dict[str, Any]]
) -> Module:
    """
    Create a draft module at the end of the course.

    The new order_index is one past the highest live order_index, so the
    first module of a course gets 0.
    """
    data = _validate(ModuleCreate, data)
    await _get_course(db, course_id)

    result = await db.execute(
        select(func.max(Module.order_index)).where(
            Module.course_id == course_id,
            Module.not_deleted()
        )
    )
    last_index = result.scalar()
    order_index = (last_index if last_index is not None else -1) + 1

    module = Module(
        course_id=course_id,
        title=data.title,
        description=data.description,
        order_index=order_index,
        is_published=False,
        requires_previous=data.requires_previous,
    )
    db.add(module)
    await _commit(db, "create module")
    await db.refresh(module)

    logger.info(f"Module created: {module.id} in course {course_id} at position {order_index}")
    return module


async def update_module(
    db: AsyncSession,
    course_id: str,
    module_id: str,
    data: Union[ModuleUpdate, Dict[str, Any]]
) -> Module:
    """Apply the fields present in data; description may be cleared with None."""
    data = _validate(ModuleUpdate, data)
    await _get_course(db, course_id)
    module = await _get_module(db, course_id, module_id)

    changes = data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is None and field != "description":
            continue
        setattr(module, field, value)

    await _commit(db, "update module")
    await db.refresh(module)

    logger.info(f"Module updated: {module_id} fields={sorted(changes)}")
    return module


async def reorder_modules(
    db: AsyncSession,
    course_id: str,
    module_ids: Union[ModuleReorder, List[str]]
) -> List[Module]:
    """
    Set order_index = list position for each listed module.

    Every id must name a live module of the course. Modules left out of
    the list keep their current order_index.
    """
    if isinstance(module_ids, list):
        module_ids = {"module_ids": module_ids}
    data = _validate(ModuleReorder, module_ids)
    await _get_course(db, course_id)

    result = await db.execute(
        select(Module.id).where(
            Module.id.in_(data.module_ids),
            Module.course_id == course_id,
            Module.not_deleted()
        )
    )
    existing = {row.id for row in result.all()}
    invalid = [mid for mid in data.module_ids if mid not in existing]
    if invalid:
        raise ValidationError(
            f"Invalid module IDs: {', '.join(invalid)}",
            details={"invalid_ids": invalid}
        )

    now = datetime.utcnow()
    for index, module_id in enumerate(data.module_ids):
        await db.execute(
            update(Module)
            .where(Module.id == module_id)
            .values(order_index=index, updated_at=now)
            .execution_options(synchronize_session=False)
        )
    await _commit(db, "reorder modules")

    logger.info(f"Modules reordered in course {course_id}: {len(data.module_ids)} module(s)")
    return await list_modules(db, course_id)


async def list_modules(db: AsyncSession, course_id: str) -> List[Module]:
    """Live modules of a course in display order, drafts included."""
    result = await db.execute(
        select(Module)
        .where(Module.course_id == course_id, Module.not_deleted())
        .order_by(Module.order_index.asc(), Module.created_at.asc(), Module.id.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def publish_module(
    db: AsyncSession,
    course_id: str,
    module_id: str,
    is_published: bool,
    cascade_to_content: bool = False
) -> ModulePublishResult:
    """
    Publish or unpublish a module.

    With cascade_to_content, publishing also publishes every live content
    item and assignment of the module. Unpublishing never cascades.
    """
    if not isinstance(is_published, bool):
        raise ValidationError("is_published must be a boolean")

    await _get_course(db, course_id)
    module = await _get_module(db, course_id, module_id)
    module.is_published = is_published

    cascaded_count = 0
    if cascade_to_content and is_published:
        now = datetime.utcnow()
        for model in (ContentItem, Assignment):
            result = await db.execute(
                update(model)
                .where(model.module_id == module_id, model.not_deleted())
                .values(is_published=True, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            cascaded_count += result.rowcount

    await _commit(db, "publish module")
    await db.refresh(module)

    logger.info(
        f"Module {'published' if is_published else 'unpublished'}: {module_id} "
        f"(cascaded to {cascaded_count} item(s))"
    )
    return ModulePublishResult(module=module.to_dict(), cascaded_count=cascaded_count)


async def delete_module(
    db: AsyncSession,
    course_id: str,
    module_id: str,
    move_content_to: Optional[str] = None
) -> ModuleDeleteResult:
    """
    Soft-delete a module.

    With move_content_to, live content is appended (in its current order)
    after the target module's last content item and live assignments are
    reattached to the target. Without it, content and assignments are
    soft-deleted along with the module.

    Raises:
        NotFoundError: course, module or target module missing
        ValidationError: target is the module being deleted
    """
    await _get_course(db, course_id)
    module = await _get_module(db, course_id, module_id)
    now = datetime.utcnow()
    moved_count = 0

    if move_content_to:
        if move_content_to == module_id:
            raise ValidationError("Cannot move content into the module being deleted")

        result = await db.execute(
            select(Module.id).where(
                Module.id == move_content_to,
                Module.course_id == course_id,
                Module.not_deleted()
            )
        )
        if result.first() is None:
            raise NotFoundError("Target module", move_content_to, code=ErrorCode.MODULE_NOT_FOUND)

        result = await db.execute(
            select(func.max(ContentItem.order_index)).where(
                ContentItem.module_id == move_content_to,
                ContentItem.not_deleted()
            )
        )
        last_index = result.scalar()
        next_index = (last_index if last_index is not None else -1) + 1

        result = await db.execute(
            select(ContentItem.id)
            .where(ContentItem.module_id == module_id, ContentItem.not_deleted())
            .order_by(ContentItem.order_index.asc(), ContentItem.created_at.asc())
        )
        for row in result.all():
            await db.execute(
                update(ContentItem)
                .where(ContentItem.id == row.id)
                .values(module_id=move_content_to, order_index=next_index, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            next_index += 1
            moved_count += 1

        result = await db.execute(
            update(Assignment)
            .where(Assignment.module_id == module_id, Assignment.not_deleted())
            .values(module_id=move_content_to, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        moved_count += result.rowcount
    else:
        for model in (ContentItem, Assignment):
            await db.execute(
                update(model)
                .where(model.module_id == module_id, model.not_deleted())
                .values(deleted_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )

    module.soft_delete(now)
    await _commit(db, "delete module")

    if move_content_to:
        logger.info(f"Module deleted: {module_id}, moved {moved_count} item(s) to {move_content_to}")
        message = "Module deleted and content moved successfully"
    else:
        logger.info(f"Module archived: {module_id}")
        message = "Module archived successfully"

    return ModuleDeleteResult(message=message, moved_count=moved_count)


# ================= MAINTENANCE =================

async def get_publish_status_report(
    db: AsyncSession,
    course_id: Optional[str] = None
) -> PublishStatusReport:
    """Live modules per live course with publish/gating state and item counts."""
    query = select(Course.id, Course.title, Course.code).where(Course.not_deleted())
    if course_id:
        query = query.where(Course.id == course_id)
    result = await db.execute(query.order_by(Course.title.asc()))
    courses = result.all()

    report = PublishStatusReport()
    for course in courses:
        result = await db.execute(
            select(
                Module.id,
                Module.title,
                Module.order_index,
                Module.is_published,
                Module.requires_previous,
            )
            .where(Module.course_id == course.id, Module.not_deleted())
            .order_by(Module.order_index.asc(), Module.created_at.asc(), Module.id.asc())
        )
        modules = result.all()
        module_ids = [m.id for m in modules]

        content_counts = await _live_counts(db, ContentItem, module_ids)
        assignment_counts = await _live_counts(db, Assignment, module_ids)

        course_report = CourseStatusReport(
            course_id=course.id,
            title=course.title,
            code=course.code,
        )
        for m in modules:
            course_report.modules.append(ModuleStatusRow(
                id=m.id,
                title=m.title,
                order_index=m.order_index,
                is_published=m.is_published,
                requires_previous=m.requires_previous,
                content_count=content_counts.get(m.id, 0),
                assignment_count=assignment_counts.get(m.id, 0),
            ))
            if not m.is_published:
                report.unpublished.append({
                    "id": m.id,
                    "title": m.title,
                    "course_title": course.title,
                    "course_code": course.code,
                })
        report.courses.append(course_report)

    return report


async def _live_counts(db: AsyncSession, model, module_ids: List[str]) -> Dict[str, int]:
    if not module_ids:
        return {}
    result = await db.execute(
        select(model.module_id, func.count(model.id))
        .where(and_(model.module_id.in_(module_ids), model.not_deleted()))
        .group_by(model.module_id)
    )
    return {module_id: count for module_id, count in result.all()}


async def set_modules_open(
    db: AsyncSession,
    course_id: Optional[str] = None,
    dry_run: bool = False
) -> int:
    """Turn off sequential gating on live modules; returns how many were (or would be) changed."""
    conditions = [Module.requires_previous == True, Module.not_deleted()]
    if course_id:
        conditions.append(Module.course_id == course_id)

    if dry_run:
        result = await db.execute(select(func.count(Module.id)).where(and_(*conditions)))
        count = result.scalar() or 0
        logger.info(f"[DRY RUN] Would open {count} module(s)")
        return count

    result = await db.execute(
        update(Module)
        .where(and_(*conditions))
        .values(requires_previous=False, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    await _commit(db, "open modules")

    logger.info(f"Opened {result.rowcount} module(s) (requires_previous -> False)")
    return result.rowcount


async def _migrate_course(db: AsyncSession, course_id: str, stats: MigrationStats, dry_run: bool) -> bool:
    """Attach a course's unassigned content to a new default module. False when skipped."""
    unassigned = {}
    for model in (ContentItem, Assignment):
        result = await db.execute(
            select(func.count(model.id)).where(
                model.course_id == course_id,
                model.module_id.is_(None),
                model.not_deleted()
            )
        )
        unassigned[model] = result.scalar() or 0

    if not any(unassigned.values()):
        return False

    if dry_run:
        stats.modules_created += 1
        stats.content_updated += unassigned[ContentItem]
        stats.assignments_updated += unassigned[Assignment]
        return True

    module = Module(
        course_id=course_id,
        title=DEFAULT_MODULE_TITLE,
        description=DEFAULT_MODULE_DESCRIPTION,
        order_index=0,
        is_published=True,
        requires_previous=False,
    )
    db.add(module)
    await db.flush()

    now = datetime.utcnow()
    moved = {}
    for model in (ContentItem, Assignment):
        result = await db.execute(
            update(model)
            .where(
                model.course_id == course_id,
                model.module_id.is_(None),
                model.not_deleted()
            )
            .values(module_id=module.id, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        moved[model] = result.rowcount

    await db.commit()

    stats.modules_created += 1
    stats.content_updated += moved[ContentItem]
    stats.assignments_updated += moved[Assignment]
    logger.info(
        f"Course {course_id}: created default module {module.id}, "
        f"attached {moved[ContentItem]} content item(s) and {moved[Assignment]} assignment(s)"
    )
    return True


async def migrate_content_to_modules(db: AsyncSession, dry_run: bool = False) -> MigrationStats:
    """
    Give every module-less course a default "Module 1" holding its content.

    Courses that already have modules (deleted ones included) or have
    nothing unassigned are skipped, so re-running is harmless. A failing
    course is rolled back, counted and logged; the run continues.
    """
    stats = MigrationStats()

    has_modules = select(Module.id).where(Module.course_id == Course.id).exists()
    result = await db.execute(
        select(Course.id, Course.title, has_modules.label("has_modules"))
        .where(Course.not_deleted())
        .order_by(Course.title.asc())
    )
    courses = result.all()
    logger.info(f"Found {len(courses)} active course(s) to process")

    for course in courses:
        if course.has_modules:
            logger.info(f"Skipping '{course.title}': already has modules")
            stats.courses_skipped += 1
            continue

        try:
            migrated = await _migrate_course(db, course.id, stats, dry_run)
        except SQLAlchemyError as e:
            await db.rollback()
            stats.courses_failed += 1
            logger.error(f"Migration failed for course '{course.title}' ({course.id}): {str(e)}")
            continue

        if migrated:
            stats.courses_processed += 1
        else:
            logger.warning(f"Skipping '{course.title}': no content to migrate")
            stats.courses_skipped += 1

    logger.info(f"Migration finished{' (dry run)' if dry_run else ''}: {stats.model_dump()}")
    return stats


async def rollback_module_migration(db: AsyncSession, dry_run: bool = False) -> Dict[str, int]:
    """
    Undo migrate_content_to_modules.

    Only modules carrying the migration marker are touched: their content
    and assignments are detached, their progress rows removed and the
    modules deleted outright.
    """
    result = await db.execute(
        select(Module.id).where(Module.description.contains(MIGRATED_MODULE_MARKER))
    )
    module_ids = [row.id for row in result.all()]
    counts = {"modules_deleted": 0, "content_detached": 0, "assignments_detached": 0}

    if not module_ids:
        logger.info("No migrated modules found; nothing to roll back")
        return counts

    if dry_run:
        for key, model in (("content_detached", ContentItem), ("assignments_detached", Assignment)):
            result = await db.execute(
                select(func.count(model.id)).where(model.module_id.in_(module_ids))
            )
            counts[key] = result.scalar() or 0
        counts["modules_deleted"] = len(module_ids)
        logger.info(f"[DRY RUN] Rollback would change: {counts}")
        return counts

    now = datetime.utcnow()
    for key, model in (("content_detached", ContentItem), ("assignments_detached", Assignment)):
        result = await db.execute(
            update(model)
            .where(model.module_id.in_(module_ids))
            .values(module_id=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        counts[key] = result.rowcount

    await db.execute(
        delete(ModuleProgress)
        .where(ModuleProgress.module_id.in_(module_ids))
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(
        delete(Module)
        .where(Module.id.in_(module_ids))
        .execution_options(synchronize_session=False)
    )
    counts["modules_deleted"] = result.rowcount
    await _commit(db, "roll back module migration")

    logger.info(f"Module migration rolled back: {counts}")
    return counts
