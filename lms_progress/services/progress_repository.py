"""
lms_progress/services/progress_repository.py
Data access for module_progress rows

The progress row is the only shared mutable state of the engine, so
every write here is atomic per call:

- ensure_progress_row: INSERT ... ON CONFLICT DO NOTHING on
  (module_id, user_id); concurrent first views cannot create duplicates.
- add_viewed_content: optimistic compare-and-set on the version column.
  A lost race re-reads and retries instead of overwriting the other
  writer's ids.
- mark_completed: UPDATE ... WHERE completed_at IS NULL; exactly one
  caller observes the transition.

Rows are handed out as immutable ModuleProgressRecord values, never as
live ORM objects, so callers cannot accidentally write through them.

Nothing here commits; the calling service owns the transaction.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from functools import wraps
from typing import Dict, FrozenSet, Iterable, Optional

from sqlalchemy import select, update, insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from lms_progress.config.settings import settings
from lms_progress.exceptions import (
    LMSProgressException,
    TransientStorageError,
    ConcurrencyConflictError,
)
from lms_progress.orm.module_progress import ModuleProgress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModuleProgressRecord:
    """Snapshot of one learner's progress row for one module."""
    id: Optional[str]
    module_id: str
    user_id: str
    content_viewed: FrozenSet[str]
    completed_at: Optional[datetime]
    version: int = 0

    @classmethod
    def empty(cls, module_id: str, user_id: str) -> "ModuleProgressRecord":
        """Zero state used when no row exists yet."""
        return cls(
            id=None,
            module_id=module_id,
            user_id=user_id,
            content_viewed=frozenset(),
            completed_at=None,
        )

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


def storage_errors(func):
    """Translate SQLAlchemy failures into TransientStorageError."""
    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except LMSProgressException:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Storage failure in {func.__name__}: {str(e)}")
            raise TransientStorageError(
                f"Progress storage failed during {func.__name__}"
            ) from e
    return wrapper


_RECORD_COLUMNS = (
    ModuleProgress.id,
    ModuleProgress.module_id,
    ModuleProgress.user_id,
    ModuleProgress.content_viewed,
    ModuleProgress.completed_at,
    ModuleProgress.version,
)


def _to_record(row) -> ModuleProgressRecord:
    return ModuleProgressRecord(
        id=row.id,
        module_id=row.module_id,
        user_id=row.user_id,
        content_viewed=frozenset(row.content_viewed or ()),
        completed_at=row.completed_at,
        version=row.version,
    )


async def _select_record(
    db: AsyncSession,
    module_id: str,
    user_id: str
) -> Optional[ModuleProgressRecord]:
    result = await db.execute(
        select(*_RECORD_COLUMNS).where(
            ModuleProgress.module_id == module_id,
            ModuleProgress.user_id == user_id,
            ModuleProgress.not_deleted()
        )
    )
    row = result.first()
    return _to_record(row) if row is not None else None


@storage_errors
async def load_progress(
    db: AsyncSession,
    module_id: str,
    user_id: str
) -> Optional[ModuleProgressRecord]:
    """Live progress row for (module, learner), or None."""
    return await _select_record(db, module_id, user_id)


@storage_errors
async def load_progress_for_modules(
    db: AsyncSession,
    user_id: str,
    module_ids: Iterable[str]
) -> Dict[str, ModuleProgressRecord]:
    """Live progress rows of one learner keyed by module id."""
    module_ids = list(module_ids)
    if not module_ids:
        return {}

    result = await db.execute(
        select(*_RECORD_COLUMNS).where(
            ModuleProgress.user_id == user_id,
            ModuleProgress.module_id.in_(module_ids),
            ModuleProgress.not_deleted()
        )
    )
    return {row.module_id: _to_record(row) for row in result.all()}


def _insert_ignoring_conflict(db: AsyncSession, values: dict):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(ModuleProgress).values(**values).on_conflict_do_nothing(
            index_elements=["module_id", "user_id"]
        )
    if dialect == "sqlite":
        return sqlite_insert(ModuleProgress).values(**values).on_conflict_do_nothing(
            index_elements=["module_id", "user_id"]
        )
    return None


@storage_errors
async def ensure_progress_row(
    db: AsyncSession,
    module_id: str,
    user_id: str
) -> ModuleProgressRecord:
    """
    Return the live progress row, creating an empty one if needed.

    A tombstoned row for the same pair is revived as a fresh, empty row:
    the unique (module_id, user_id) key leaves no room for a second one.
    """
    values = {
        "module_id": module_id,
        "user_id": user_id,
        "content_viewed": [],
        "version": 1,
    }

    stmt = _insert_ignoring_conflict(db, values)
    if stmt is not None:
        await db.execute(stmt)
    else:
        existing = await db.execute(
            select(ModuleProgress.id).where(
                ModuleProgress.module_id == module_id,
                ModuleProgress.user_id == user_id
            )
        )
        if existing.first() is None:
            await db.execute(insert(ModuleProgress).values(**values))

    record = await _select_record(db, module_id, user_id)
    if record is not None:
        return record

    logger.info(f"Reviving deleted progress row: module={module_id} user={user_id}")
    await db.execute(
        update(ModuleProgress)
        .where(
            ModuleProgress.module_id == module_id,
            ModuleProgress.user_id == user_id,
            ModuleProgress.deleted_at.is_not(None)
        )
        .values(
            deleted_at=None,
            content_viewed=[],
            completed_at=None,
            version=ModuleProgress.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    return await _select_record(db, module_id, user_id)


async def _compare_and_set_viewed(
    db: AsyncSession,
    record: ModuleProgressRecord,
    content_viewed: FrozenSet[str]
) -> bool:
    result = await db.execute(
        update(ModuleProgress)
        .where(
            ModuleProgress.id == record.id,
            ModuleProgress.version == record.version
        )
        .values(
            content_viewed=sorted(content_viewed),
            version=record.version + 1,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


@storage_errors
async def add_viewed_content(
    db: AsyncSession,
    module_id: str,
    user_id: str,
    content_id: str,
    retries: Optional[int] = None
) -> bool:
    """
    Add content_id to the learner's viewed set.

    Returns True if the id was newly added, False if it was already
    present. Raises ConcurrencyConflictError when every attempt lost
    to a concurrent writer.
    """
    if retries is None:
        retries = settings.PROGRESS_CONFLICT_RETRIES

    await ensure_progress_row(db, module_id, user_id)

    for attempt in range(retries + 1):
        record = await load_progress(db, module_id, user_id)
        if record is None:
            record = await ensure_progress_row(db, module_id, user_id)

        if content_id in record.content_viewed:
            return False

        if await _compare_and_set_viewed(db, record, record.content_viewed | {content_id}):
            return True

        logger.warning(
            f"[PROGRESS CONFLICT] module={module_id} user={user_id} "
            f"version={record.version} attempt={attempt + 1}/{retries + 1}"
        )

    raise ConcurrencyConflictError(
        f"Progress row for module {module_id} kept changing; gave up after {retries + 1} attempts",
        module_id=module_id,
        user_id=user_id,
    )


@storage_errors
async def mark_completed(
    db: AsyncSession,
    module_id: str,
    user_id: str,
    completed_at: Optional[datetime] = None
) -> bool:
    """
    Stamp completed_at if it is still unset.

    Returns True only for the call that performed the stamp.
    """
    await ensure_progress_row(db, module_id, user_id)

    result = await db.execute(
        update(ModuleProgress)
        .where(
            ModuleProgress.module_id == module_id,
            ModuleProgress.user_id == user_id,
            ModuleProgress.not_deleted(),
            ModuleProgress.completed_at.is_(None)
        )
        .values(
            completed_at=completed_at or datetime.utcnow(),
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
