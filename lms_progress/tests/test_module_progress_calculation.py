"""
Tests for the module progress formula and the counts feeding it.
"""
import pytest
from unittest.mock import patch

from lms_progress.config.settings import settings
from lms_progress.services.module_progress_service import (
    round_half_up,
    compute_module_progress,
    calculate_module_progress,
    count_published_content,
    count_submitted_assignments,
)
from lms_progress.services.progress_repository import add_viewed_content

STUDENT = "student-1"


class TestRoundHalfUp:
    def test_half_rounds_up(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(66.5) == 67

    def test_below_half_rounds_down(self):
        assert round_half_up(33.333) == 33
        assert round_half_up(0.49) == 0


class TestComputeModuleProgress:
    def test_content_and_assignments_split_evenly(self):
        # 2/4 viewed -> 25, 1/2 submitted -> 25
        assert compute_module_progress(2, 4, 1, 2) == 50

    def test_content_only(self):
        assert compute_module_progress(2, 3, 0, 0) == 67
        assert compute_module_progress(1, 3, 0, 0) == 33
        assert compute_module_progress(3, 3, 0, 0) == 100

    def test_assignments_only(self):
        assert compute_module_progress(0, 0, 1, 3) == 33
        assert compute_module_progress(0, 0, 2, 2) == 100

    def test_empty_module_is_zero(self):
        assert compute_module_progress(0, 0, 0, 0) == 0

    def test_viewed_ids_count_even_without_content(self):
        assert compute_module_progress(5, 0, 0, 0) == 0

    def test_stale_views_capped(self):
        assert compute_module_progress(5, 4, 0, 0, cap=True) == 100

    def test_stale_views_uncapped(self):
        assert compute_module_progress(5, 4, 0, 0, cap=False) == 125

    def test_cap_follows_setting(self):
        with patch.object(settings, "CAP_MODULE_PROGRESS", False):
            assert compute_module_progress(3, 2, 0, 0) == 150
        with patch.object(settings, "CAP_MODULE_PROGRESS", True):
            assert compute_module_progress(3, 2, 0, 0) == 100


class TestCalculateModuleProgress:
    @pytest.mark.asyncio
    async def test_no_progress_row_is_zero(self, db_session, factory):
        course = await factory.course()
        module = await factory.module(course, "Week 1", 0)
        await factory.content(module)

        result = await calculate_module_progress(db_session, module.id, STUDENT)

        assert result.progress == 0
        assert result.is_complete is False
        assert result.viewed_count == 0
        assert result.total_content == 1
        assert result.unlocked_module is None

    @pytest.mark.asyncio
    async def test_mixed_module_at_fifty(self, db_session, factory):
        course = await factory.course()
        module = await factory.module(course, "Week 1", 0)
        items = [await factory.content(module, f"Item {i}") for i in range(4)]
        first = await factory.assignment(module, "HW 1")
        await factory.assignment(module, "HW 2")

        await add_viewed_content(db_session, module.id, STUDENT, items[0].id)
        await add_viewed_content(db_session, module.id, STUDENT, items[1].id)
        await db_session.commit()
        await factory.submission(first)
        await factory.submission(first)  # resubmission counts once

        result = await calculate_module_progress(db_session, module.id, STUDENT)

        assert result.progress == 50
        assert result.viewed_count == 2
        assert result.total_content == 4
        assert result.submitted_count == 1
        assert result.total_assignments == 2
        assert result.is_complete is False

    @pytest.mark.asyncio
    async def test_unpublished_and_deleted_items_not_counted(self, db_session, factory):
        course = await factory.course()
        module = await factory.module(course, "Week 1", 0)
        await factory.content(module, "Live")
        await factory.content(module, "Draft", is_published=False)
        gone = await factory.content(module, "Gone")
        gone.soft_delete()
        await db_session.commit()

        hidden = await factory.assignment(module, "Hidden", is_published=False)
        await factory.submission(hidden)

        assert await count_published_content(db_session, module.id) == 1
        assert await count_submitted_assignments(db_session, module.id, STUDENT) == 0

        result = await calculate_module_progress(db_session, module.id, STUDENT)
        assert result.total_content == 1
        assert result.total_assignments == 0

    @pytest.mark.asyncio
    async def test_other_students_submissions_ignored(self, db_session, factory):
        course = await factory.course()
        module = await factory.module(course, "Week 1", 0)
        assignment = await factory.assignment(module)
        await factory.submission(assignment, student_id="someone-else")

        result = await calculate_module_progress(db_session, module.id, STUDENT)
        assert result.progress == 0

    @pytest.mark.asyncio
    async def test_stale_viewed_ids_still_count(self, db_session, factory):
        course = await factory.course()
        module = await factory.module(course, "Week 1", 0)
        items = [await factory.content(module, f"Item {i}") for i in range(3)]
        for item in items:
            await add_viewed_content(db_session, module.id, STUDENT, item.id)
        await db_session.commit()

        items[2].is_published = False
        await db_session.commit()

        capped = await calculate_module_progress(db_session, module.id, STUDENT)
        assert capped.viewed_count == 3
        assert capped.total_content == 2
        assert capped.progress == 100

        with patch.object(settings, "CAP_MODULE_PROGRESS", False):
            raw = await calculate_module_progress(db_session, module.id, STUDENT)
        assert raw.progress == 150
        assert raw.is_complete is True
