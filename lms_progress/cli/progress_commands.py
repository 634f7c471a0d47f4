"""
Progress inspection CLI commands: show, unlocks
"""
from lms_progress.cli.base import AsyncCommand
from lms_progress.services.module_progress_service import calculate_module_progress
from lms_progress.services.module_unlock_service import get_course_modules_overview


class ProgressCommand(AsyncCommand):
    """Read-only progress command handler."""

    def execute(self, args) -> int:
        if args.progress_action == "show":
            return self.run_async(self._show, args.module, args.user)
        elif args.progress_action == "unlocks":
            return self.run_async(self._unlocks, args.course, args.user)
        else:
            print("Error: Unknown progress action")
            return 1

    async def _show(self, db, module_id, user_id) -> int:
        result = await calculate_module_progress(db, module_id, user_id)

        print(f"=== Progress: module {module_id}, user {user_id} ===")
        print(f"Progress:    {result.progress}%{' (complete)' if result.is_complete else ''}")
        print(f"Content:     {result.viewed_count}/{result.total_content} viewed")
        print(f"Assignments: {result.submitted_count}/{result.total_assignments} submitted")
        return 0

    async def _unlocks(self, db, course_id, user_id) -> int:
        overview = await get_course_modules_overview(db, course_id, user_id)

        print(f"=== Modules: course {course_id}, user {user_id} ===")
        for module in overview.modules:
            line = f"  [{module.status.value:<11}] {module.title} - {module.progress}%"
            if module.unlock_message:
                line += f" ({module.unlock_message})"
            print(line)
        print(f"\nCourse progress: {overview.course_progress}%")
        return 0
