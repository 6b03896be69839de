"""
Process a local PDF without running the server.

Stores the PDF, creates its book record and runs the full extraction
pipeline in the foreground, then prints the resulting status.

Usage:
    python scripts/process_pdf.py path/to/book.pdf [author]
"""
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from bookshelf.core.config import get_settings
from bookshelf.core.database import Database
from bookshelf.main import build_processor
from bookshelf.services.book_service import BookService
from bookshelf.services.storage import LocalStorageService
from bookshelf.utils.helper import is_pdf
from bookshelf.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


def process_pdf(pdf_path: Path, author: str = None) -> int:
    """Ingest one PDF; returns a process exit code."""
    if not pdf_path.exists():
        logger.error(f"❌ File not found: {pdf_path}")
        return 1

    data = pdf_path.read_bytes()
    if not is_pdf(data):
        logger.error(f"❌ Not a PDF file: {pdf_path}")
        return 1

    database = Database(settings.DATABASE_URL)
    database.create_tables()
    storage = LocalStorageService(settings.STORAGE_DIR)

    try:
        with database.session() as db:
            book = BookService(db, storage).create_book(data, pdf_path.name, author=author)
        book_id = book.id

        logger.info(f"📄 Processing {pdf_path.name} as book {book_id}")
        processor = build_processor(settings, database, storage)
        asyncio.run(processor.process(book_id, timeout_seconds=settings.PROCESSING_TIMEOUT_SECONDS))

        with database.session() as db:
            status = BookService(db, storage).get_book_status(book_id)

        print("=" * 70)
        print(f"Book:     {book_id}")
        print(f"Status:   {status.status.value}")
        print(f"Pages:    {status.metadata.total_pages}")
        print(f"Words:    {status.metadata.word_count}")
        if status.error:
            print(f"Error:    {status.error}")
        print("=" * 70)

        return 0 if status.error is None else 2

    finally:
        database.dispose()


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python scripts/process_pdf.py <pdf_path> [author]")
        sys.exit(1)

    sys.exit(process_pdf(Path(sys.argv[1]), sys.argv[2] if len(sys.argv) > 2 else None))
