"""
Module maintenance CLI commands: status, open, migrate
"""
from lms_progress.cli.base import AsyncCommand
from lms_progress.services import module_service


class ModuleCommand(AsyncCommand):
    """Module maintenance command handler."""

    def execute(self, args) -> int:
        if args.modules_action == "status":
            return self.run_async(self._status, args.course)
        elif args.modules_action == "open":
            return self.run_async(self._open, args.course)
        elif args.modules_action == "migrate":
            if args.rollback:
                return self.run_async(self._rollback)
            return self.run_async(self._migrate)
        else:
            print("Error: Unknown modules action")
            return 1

    async def _status(self, db, course_id) -> int:
        print("=== Module Publish Status ===")
        report = await module_service.get_publish_status_report(db, course_id)

        for course in report.courses:
            print(f"\nCourse: {course.title} ({course.code})")
            print(f"  ID: {course.course_id}")
            print(f"  Modules: {len(course.modules)}")
            if not course.modules:
                print("  (No modules)")
                continue

            for module in course.modules:
                publish_status = "PUBLISHED" if module.is_published else "DRAFT"
                access = "Sequential" if module.requires_previous else "Open"
                print(f"  {module.order_index + 1}. {module.title}")
                print(f"     Status: {publish_status}  Access: {access}")
                print(f"     Content: {module.content_count} items, {module.assignment_count} assignments")
                print(f"     ID: {module.id}")

        if report.unpublished:
            print("\nUNPUBLISHED MODULES (learners cannot see these):")
            for module in report.unpublished:
                print(f"  - \"{module['title']}\" in {module['course_title']} ({module['course_code']})")
        return 0

    async def _open(self, db, course_id) -> int:
        print("=== Open Modules ===")
        count = await module_service.set_modules_open(db, course_id, dry_run=self.dry_run)
        prefix = "[DRY RUN] Would update" if self.dry_run else "Updated"
        print(f"{prefix} {count} module(s) to open access")
        return 0

    async def _migrate(self, db) -> int:
        print("=== Migrate Existing Content to Modules ===")
        stats = await module_service.migrate_content_to_modules(db, dry_run=self.dry_run)

        if self.dry_run:
            print("[DRY RUN] No changes written")
        print(f"Courses processed:   {stats.courses_processed}")
        print(f"Courses skipped:     {stats.courses_skipped}")
        print(f"Courses failed:      {stats.courses_failed}")
        print(f"Modules created:     {stats.modules_created}")
        print(f"Content updated:     {stats.content_updated}")
        print(f"Assignments updated: {stats.assignments_updated}")
        return 1 if stats.courses_failed else 0

    async def _rollback(self, db) -> int:
        print("=== Roll Back Module Migration ===")
        counts = await module_service.rollback_module_migration(db, dry_run=self.dry_run)

        if self.dry_run:
            print("[DRY RUN] No changes written")
        for key, value in counts.items():
            print(f"  {key}: {value}")
        return 0
