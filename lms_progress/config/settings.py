"""
Settings

Centralized runtime configuration for the progress engine.
All values are loaded from environment variables (a local .env file
is honoured). Values are plain class attributes so tests and scripts
can override them in place.
"""
import os
from dotenv import load_dotenv

load_dotenv()


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


def get_int_env(key: str, default: int = 0) -> int:
    """Get an integer value from environment variable, falling back on bad input."""
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Settings:
    """
    Runtime settings.

    To add a new setting:
    1. Add it here as a class attribute
    2. Load it from an environment variable
    3. Read it at call time (settings.NAME), not at import time
    """

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./lms_progress.db")
    DATABASE_ECHO: bool = get_bool_env('DATABASE_ECHO', False)

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Progress engine
    # Viewed ids of content unpublished after viewing still count, which can
    # push the raw percentage past 100. Capping keeps it in [0, 100].
    CAP_MODULE_PROGRESS: bool = get_bool_env('CAP_MODULE_PROGRESS', True)

    # Extra attempts after an optimistic-lock conflict on content_viewed
    PROGRESS_CONFLICT_RETRIES: int = max(0, get_int_env('PROGRESS_CONFLICT_RETRIES', 1))

    def as_dict(self) -> dict:
        """Current values, including in-place overrides."""
        return {
            key: getattr(self, key)
            for key in type(self).__annotations__
        }


# Singleton instance for easy importing
settings = Settings()
