"""
Tests for module lock/unlock decisions and the course overview.
"""
import pytest

from lms_progress.exceptions import NotFoundError
from lms_progress.schemas.progress import ModuleStatus, ModuleUnlockInfo
from lms_progress.services.module_progress_service import mark_content_viewed
from lms_progress.services.module_unlock_service import (
    is_module_unlocked,
    is_module_completed,
    get_modules_unlock_info,
    calculate_course_progress,
    get_course_modules_overview,
)

STUDENT = "student-1"


class TestIsModuleUnlocked:
    @pytest.mark.asyncio
    async def test_gated_module_locked_until_previous_completes(self, db_session, factory):
        course = await factory.course()
        module_a = await factory.module(course, "Module A", 0)
        item = await factory.content(module_a)
        module_b = await factory.module(course, "Module B", 1, requires_previous=True)

        locked = await is_module_unlocked(db_session, module_b.id, STUDENT, course.id)

        assert locked.is_unlocked is False
        assert locked.status == ModuleStatus.LOCKED
        assert locked.progress == 0
        assert locked.prerequisite_module_id == module_a.id
        assert locked.prerequisite_module_title == "Module A"
        assert locked.unlock_message == 'Complete "Module A" to unlock'

        await mark_content_viewed(db_session, module_a.id, STUDENT, item.id)
        unlocked = await is_module_unlocked(db_session, module_b.id, STUDENT, course.id)

        assert unlocked.is_unlocked is True
        assert unlocked.status == ModuleStatus.AVAILABLE
        assert unlocked.prerequisite_module_id is None

    @pytest.mark.asyncio
    async def test_open_module_always_unlocked(self, db_session, factory):
        course = await factory.course()
        await factory.module(course, "Module A", 0)
        module_c = await factory.module(course, "Module C", 1, requires_previous=False)

        info = await is_module_unlocked(db_session, module_c.id, STUDENT, course.id)

        assert info.is_unlocked is True
        assert info.status == ModuleStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_first_module_unlocked(self, db_session, factory):
        course = await factory.course()
        first = await factory.module(course, "First", 3)

        info = await is_module_unlocked(db_session, first.id, STUDENT, course.id)

        assert info.is_unlocked is True

    @pytest.mark.asyncio
    async def test_in_progress_status(self, db_session, factory):
        course = await factory.course()
        module = await factory.module(course, "Module A", 0)
        item = await factory.content(module, "One")
        await factory.content(module, "Two")
        await mark_content_viewed(db_session, module.id, STUDENT, item.id)

        info = await is_module_unlocked(db_session, module.id, STUDENT, course.id)

        assert info.status == ModuleStatus.IN_PROGRESS
        assert info.progress == 50

    @pytest.mark.asyncio
    async def test_completed_module(self, db_session, factory):
        course = await factory.course()
        module = await factory.module(course, "Module A", 0)
        await factory.content(module)
        await factory.completed(module)

        info = await is_module_unlocked(db_session, module.id, STUDENT, course.id)

        assert info.status == ModuleStatus.COMPLETED
        assert info.progress == 100
        assert await is_module_completed(db_session, module.id, STUDENT)

    @pytest.mark.asyncio
    async def test_module_from_other_course_not_found(self, db_session, factory):
        course = await factory.course()
        other = await factory.course("Other", "OTH101")
        module = await factory.module(other, "Elsewhere", 0)

        info = await is_module_unlocked(db_session, module.id, STUDENT, course.id)

        assert info.is_unlocked is False
        assert info.status == ModuleStatus.LOCKED
        assert info.unlock_message == "Module not found"

    @pytest.mark.asyncio
    async def test_predecessor_found_across_gap(self, db_session, factory):
        course = await factory.course()
        first = await factory.module(course, "First", 0)
        await factory.module(course, "Draft", 2, is_published=False)
        gated = await factory.module(course, "Gated", 7)

        info = await is_module_unlocked(db_session, gated.id, STUDENT, course.id)

        assert info.is_unlocked is False
        assert info.prerequisite_module_id == first.id

        await factory.completed(first)
        info = await is_module_unlocked(db_session, gated.id, STUDENT, course.id)
        assert info.is_unlocked is True

    @pytest.mark.asyncio
    async def test_other_learners_completion_does_not_count(self, db_session, factory):
        course = await factory.course()
        first = await factory.module(course, "First", 0)
        second = await factory.module(course, "Second", 1)
        await factory.completed(first, user_id="someone-else")

        info = await is_module_unlocked(db_session, second.id, STUDENT, course.id)

        assert info.is_unlocked is False


class TestCourseProgress:
    def test_mean_of_unlocked_modules(self):
        infos = [
            ModuleUnlockInfo(is_unlocked=True, status=ModuleStatus.COMPLETED, progress=100),
            ModuleUnlockInfo(is_unlocked=True, status=ModuleStatus.IN_PROGRESS, progress=17),
            ModuleUnlockInfo(is_unlocked=False, status=ModuleStatus.LOCKED, progress=0),
        ]
        # (100 + 17) / 2 = 58.5
        assert calculate_course_progress(infos) == 59

    def test_nothing_unlocked(self):
        infos = {"m1": ModuleUnlockInfo(is_unlocked=False, status=ModuleStatus.LOCKED)}
        assert calculate_course_progress(infos) == 0
        assert calculate_course_progress([]) == 0


class TestBulkUnlockInfo:
    async def _course(self, factory):
        course = await factory.course()
        module_a = await factory.module(course, "A", 0)
        a_items = [await factory.content(module_a, f"a{i}") for i in range(2)]
        module_b = await factory.module(course, "B", 1)
        await factory.content(module_b, "b1")
        await factory.assignment(module_b, "B homework")
        await factory.module(course, "Hidden", 2, is_published=False)
        module_c = await factory.module(course, "C", 4, requires_previous=False)
        c_assignment = await factory.assignment(module_c, "C homework")
        module_d = await factory.module(course, "D", 9)
        return course, [module_a, module_b, module_c, module_d], a_items, c_assignment

    @pytest.mark.asyncio
    async def test_matches_single_module_checks(self, db_session, factory):
        course, modules, a_items, c_assignment = await self._course(factory)
        await mark_content_viewed(db_session, modules[0].id, STUDENT, a_items[0].id)
        await factory.submission(c_assignment)

        bulk = await get_modules_unlock_info(db_session, course.id, STUDENT)

        assert list(bulk) == [m.id for m in modules]
        for module in modules:
            single = await is_module_unlocked(db_session, module.id, STUDENT, course.id)
            assert bulk[module.id] == single, module.title

    @pytest.mark.asyncio
    async def test_states_after_progress(self, db_session, factory):
        course, modules, a_items, c_assignment = await self._course(factory)
        module_a, module_b, module_c, module_d = modules
        for item in a_items:
            await mark_content_viewed(db_session, module_a.id, STUDENT, item.id)
        await factory.submission(c_assignment)

        bulk = await get_modules_unlock_info(db_session, course.id, STUDENT)

        assert bulk[module_a.id].status == ModuleStatus.COMPLETED
        assert bulk[module_b.id].status == ModuleStatus.AVAILABLE
        assert bulk[module_c.id].progress == 100
        assert bulk[module_c.id].status == ModuleStatus.IN_PROGRESS
        assert bulk[module_d.id].is_unlocked is False
        assert bulk[module_d.id].prerequisite_module_id == module_c.id

    @pytest.mark.asyncio
    async def test_overview(self, db_session, factory):
        course, modules, a_items, _ = await self._course(factory)
        await mark_content_viewed(db_session, modules[0].id, STUDENT, a_items[0].id)

        overview = await get_course_modules_overview(db_session, course.id, STUDENT)

        assert overview.course_id == course.id
        assert [row.title for row in overview.modules] == ["A", "B", "C", "D"]
        row_a, row_b, row_c, row_d = overview.modules
        assert (row_a.content_count, row_a.assignment_count) == (2, 0)
        assert (row_b.content_count, row_b.assignment_count) == (1, 1)
        assert row_a.progress == 50
        assert row_b.is_unlocked is False
        assert row_c.is_unlocked is True
        assert row_d.is_unlocked is False
        # unlocked: A (50) and C (0)
        assert overview.course_progress == 25

    @pytest.mark.asyncio
    async def test_empty_course(self, db_session, factory):
        course = await factory.course()

        assert await get_modules_unlock_info(db_session, course.id, STUDENT) == {}
        overview = await get_course_modules_overview(db_session, course.id, STUDENT)
        assert overview.modules == []
        assert overview.course_progress == 0

    @pytest.mark.asyncio
    async def test_missing_course(self, db_session):
        with pytest.raises(NotFoundError):
            await get_course_modules_overview(db_session, "no-such-course", STUDENT)
