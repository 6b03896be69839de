"""
Wipe all books: drops and recreates the tables and empties storage.

Usage:
    python scripts/reset_storage.py [--yes]
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from bookshelf.core.config import get_settings
from bookshelf.core.database import Database
from bookshelf.services.storage import LocalStorageService
from bookshelf.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


def reset_storage() -> None:
    database = Database(settings.DATABASE_URL)
    try:
        database.reset()
        logger.info("🧹 Database reset")
    finally:
        database.dispose()

    LocalStorageService(settings.STORAGE_DIR).clear()
    logger.info(f"🧹 Storage cleared: {settings.STORAGE_DIR}")


if __name__ == "__main__":
    if "--yes" not in sys.argv:
        choice = input("This deletes every book and file. Continue? [y/N]: ").strip().lower()
        if choice != "y":
            print("Aborted.")
            sys.exit(0)

    reset_storage()
