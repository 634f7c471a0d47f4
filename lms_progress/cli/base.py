"""
Shared plumbing for CLI command handlers.

Handlers are synchronous (execute(args) -> exit code) and run their
async work through run_async, which opens one session per command and
disposes the engine afterwards.
"""
import asyncio
import logging

from lms_progress.exceptions import LMSProgressException

logger = logging.getLogger(__name__)


class AsyncCommand:
    """Base class for command handlers that talk to the database."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def run_async(self, func, *args, **kwargs) -> int:
        """Run func(db, *args, **kwargs) in a fresh session; map domain errors to exit code 1."""
        try:
            return asyncio.run(self._with_session(func, *args, **kwargs))
        except LMSProgressException as e:
            logger.debug(f"Command failed: {e.to_dict()}")
            print(f"Error: {e.message}")
            return 1

    async def _with_session(self, func, *args, **kwargs) -> int:
        from lms_progress.database import session_scope, close_db

        try:
            async with session_scope() as db:
                return await func(db, *args, **kwargs)
        finally:
            await close_db()
