"""
Shared fixtures: in-memory database session and a small data factory.
"""
import pytest_asyncio
from datetime import datetime
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from typing import AsyncGenerator

from lms_progress.orm.base import Base
from lms_progress.orm.course import Course
from lms_progress.orm.module import Module
from lms_progress.orm.content_item import ContentItem
from lms_progress.orm.assignment import Assignment, Submission
from lms_progress.orm.module_progress import ModuleProgress

# Test database setup
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

STUDENT_ID = "student-1"


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        yield session

    # Cleanup
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


class DataFactory:
    """Creates committed rows for tests."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _save(self, obj):
        self.db.add(obj)
        await self.db.commit()
        await self.db.refresh(obj)
        return obj

    async def course(self, title: str = "Intro to Testing", code: str = "TST101") -> Course:
        return await self._save(Course(title=title, code=code))

    async def module(
        self,
        course: Course,
        title: str,
        order_index: int,
        is_published: bool = True,
        requires_previous: bool = True,
        description: str = None,
    ) -> Module:
        return await self._save(Module(
            course_id=course.id,
            title=title,
            description=description,
            order_index=order_index,
            is_published=is_published,
            requires_previous=requires_previous,
        ))

    async def content(
        self,
        module: Module = None,
        title: str = "Reading",
        is_published: bool = True,
        order_index: int = 0,
        course: Course = None,
    ) -> ContentItem:
        return await self._save(ContentItem(
            course_id=course.id if course else module.course_id,
            module_id=module.id if module else None,
            title=title,
            is_published=is_published,
            order_index=order_index,
        ))

    async def assignment(
        self,
        module: Module = None,
        title: str = "Homework",
        is_published: bool = True,
        course: Course = None,
    ) -> Assignment:
        return await self._save(Assignment(
            course_id=course.id if course else module.course_id,
            module_id=module.id if module else None,
            title=title,
            is_published=is_published,
        ))

    async def submission(self, assignment: Assignment, student_id: str = STUDENT_ID) -> Submission:
        return await self._save(Submission(
            assignment_id=assignment.id,
            student_id=student_id,
            submitted_at=datetime.utcnow(),
        ))

    async def completed(self, module: Module, user_id: str = STUDENT_ID) -> ModuleProgress:
        """Progress row already stamped complete."""
        return await self._save(ModuleProgress(
            module_id=module.id,
            user_id=user_id,
            content_viewed=[],
            completed_at=datetime.utcnow(),
        ))

    async def get(self, model, id_):
        """Fresh copy of a row, bypassing the identity map."""
        result = await self.db.execute(
            select(model).where(model.id == id_).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


@pytest_asyncio.fixture
async def factory(db_session: AsyncSession) -> DataFactory:
    return DataFactory(db_session)
