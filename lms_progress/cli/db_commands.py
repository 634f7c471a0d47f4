"""
Database CLI commands: init, config
"""
import asyncio

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from lms_progress.config.settings import settings


def mask_database_url(url: str) -> str:
    """Database URL with the password replaced by ***."""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return url[:20] + "..."


class DbCommand:
    """Database CLI command handler."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def execute(self, args) -> int:
        """Execute database command."""
        if args.db_action == "init":
            return self._init(args)
        elif args.db_action == "config":
            return self._config(args)
        else:
            print("Error: Unknown database action")
            return 1

    def _init(self, args) -> int:
        """Create missing tables."""
        print("=== Database Initialization ===")

        if self.dry_run:
            print(f"[DRY RUN] Would create tables on {mask_database_url(settings.DATABASE_URL)}")
            return 0

        asyncio.run(self._async_init())
        print("Tables created")
        return 0

    async def _async_init(self) -> None:
        from lms_progress.database import init_db, close_db

        try:
            await init_db()
        finally:
            await close_db()

    def _config(self, args) -> int:
        """Show effective settings."""
        print("=== Configuration ===")
        for key, value in settings.as_dict().items():
            if key == "DATABASE_URL":
                value = mask_database_url(value)
            print(f"  {key}: {value}")
        return 0
