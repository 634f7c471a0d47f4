#!/usr/bin/env python3
"""
Module Progress CLI

Usage:
    python -m lms_progress.cli <command> [options]

Commands:
    db          Database operations (init, config)
    modules     Module maintenance (status, open, migrate)
    progress    Learner progress inspection (show, unlocks)

Environment:
    DATABASE_URL    Async SQLAlchemy URL (sqlite+aiosqlite or postgresql+asyncpg)
    LOG_LEVEL       DEBUG|INFO|WARNING|ERROR
"""
import sys
import argparse
import logging
from typing import Optional

from lms_progress.config.settings import settings
from lms_progress.cli.db_commands import DbCommand
from lms_progress.cli.module_commands import ModuleCommand
from lms_progress.cli.progress_commands import ProgressCommand


def setup_logging(level: str = "INFO") -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="lms-progress",
        description="Module progress and unlock engine CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s db init
  %(prog)s modules status --course <course-id>
  %(prog)s --dry-run modules migrate
  %(prog)s progress unlocks --course <course-id> --user <user-id>
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0"
    )

    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: LOG_LEVEL or INFO)"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without writing"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Database commands
    db_parser = subparsers.add_parser("db", help="Database operations")
    db_subparsers = db_parser.add_subparsers(dest="db_action")
    db_subparsers.add_parser("init", help="Create missing tables")
    db_subparsers.add_parser("config", help="Show effective settings")

    # Module maintenance commands
    modules_parser = subparsers.add_parser("modules", help="Module maintenance")
    modules_subparsers = modules_parser.add_subparsers(dest="modules_action")

    status_parser = modules_subparsers.add_parser("status", help="Module publish status report")
    status_parser.add_argument("--course", "-c", help="Limit to one course ID")

    open_parser = modules_subparsers.add_parser("open", help="Turn off sequential gating")
    open_parser.add_argument("--course", "-c", help="Limit to one course ID")

    migrate_parser = modules_subparsers.add_parser(
        "migrate", help="Move module-less course content into a default module"
    )
    migrate_parser.add_argument("--rollback", action="store_true", help="Undo the migration")

    # Progress commands
    progress_parser = subparsers.add_parser("progress", help="Learner progress")
    progress_subparsers = progress_parser.add_subparsers(dest="progress_action")

    show_parser = progress_subparsers.add_parser("show", help="Progress of one learner in one module")
    show_parser.add_argument("--module", "-m", required=True, help="Module ID")
    show_parser.add_argument("--user", "-u", required=True, help="User ID")

    unlocks_parser = progress_subparsers.add_parser("unlocks", help="Lock state of every module in a course")
    unlocks_parser.add_argument("--course", "-c", required=True, help="Course ID")
    unlocks_parser.add_argument("--user", "-u", required=True, help="User ID")

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return 1

    setup_logging(parsed.log_level)

    command_map = {
        "db": DbCommand,
        "modules": ModuleCommand,
        "progress": ProgressCommand,
    }

    if parsed.command in command_map:
        handler = command_map[parsed.command](dry_run=parsed.dry_run)
        return handler.execute(parsed)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
