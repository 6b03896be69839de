"""
Book Service with Database Persistence.

Stores:
- Uploaded PDFs in storage (pdfs/{book_id}/{filename})
- Book records and their processing state in the database

Extraction itself is done by BookProcessor; this service only reads what
the pipeline wrote.
"""
import uuid
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from bookshelf.core.database import Book, get_db
from bookshelf.core.exceptions import StorageError
from bookshelf.models.book import (
    BookStatus, BookStatusResponse, BookMetadata, BookSummary, BookDetails,
    ProcessingStage, progress_for_status
)
from bookshelf.services.storage import LocalStorageService, get_pdf_path, get_image_path
from bookshelf.utils.helper import safe_filename, title_from_filename
from bookshelf.utils.logger import get_logger

logger = get_logger(__name__)


class BookService:
    """Service for book management with database persistence."""

    def __init__(self, db: Session, storage: LocalStorageService):
        """Initialize with database session and storage."""
        self.db = db
        self.storage = storage

    # ==================== Upload ====================

    def create_book(
            self,
            data: bytes,
            original_filename: Optional[str],
            author: Optional[str] = None
    ) -> Book:
        """
        Save an uploaded PDF and create its book record in PROCESSING state.

        The caller has already validated size and magic bytes.
        """
        book_id = str(uuid.uuid4())
        filename = safe_filename(original_filename)
        pdf_path = get_pdf_path(book_id, filename)

        self.storage.save_file(pdf_path, data)

        try:
            book = Book(
                id=book_id,
                title=title_from_filename(filename),
                author=author,
                pdf_path=pdf_path,
                status=BookStatus.PROCESSING.value,
            )
            self.db.add(book)
            self.db.commit()
            self.db.refresh(book)

        except Exception:
            self.db.rollback()
            self.storage.delete_book_files(book_id)
            raise

        logger.info(f"✅ Created book: {book.title} ({book_id})")
        return book

    # ==================== Query Methods ====================

    def get_book(self, book_id: str) -> Optional[Book]:
        """Get book by ID."""
        return self.db.get(Book, book_id)

    def list_books(self) -> List[BookSummary]:
        """List all books, newest first."""
        stmt = select(Book).order_by(Book.created_at.desc())
        books = self.db.execute(stmt).scalars().all()
        return [BookSummary.model_validate(book) for book in books]

    def get_book_details(self, book_id: str) -> Optional[BookDetails]:
        """Book with its chapters and images."""
        book = self.db.get(Book, book_id)
        if not book:
            return None
        return BookDetails.model_validate(book)

    def get_book_status(self, book_id: str) -> Optional[BookStatusResponse]:
        """
        Status for polling. While PROCESSING the last recorded stage drives
        the progress value; otherwise it is derived from the status.
        """
        book = self.db.get(Book, book_id)
        if not book:
            return None

        progress = progress_for_status(book.status)
        stage = None
        message = None

        if book.progress is not None:
            stage = ProcessingStage(book.progress.stage)
            message = book.progress.message
            if book.status == BookStatus.PROCESSING.value:
                progress = book.progress.percent

        return BookStatusResponse(
            id=book.id,
            status=BookStatus(book.status),
            error=book.error_message,
            progress=progress,
            stage=stage,
            message=message,
            metadata=BookMetadata(
                total_pages=book.total_pages or 0,
                word_count=book.word_count or 0,
                title=book.title,
                author=book.author,
            )
        )

    def get_image_file(self, book_id: str, filename: str) -> Optional[Path]:
        """Absolute path of a rendered image, or None if it does not exist."""
        path = get_image_path(book_id, safe_filename(filename, default=""))
        if not self.storage.file_exists(path):
            return None
        return self.storage.get_file_path(path)

    # ==================== Delete ====================

    def delete_book(self, book_id: str) -> bool:
        """Delete a book's files, then the book (chapters/images cascade)."""
        book = self.db.get(Book, book_id)
        if not book:
            return False

        try:
            self.storage.delete_book_files(book_id)
        except StorageError as e:
            logger.warning(f"Storage deletion warning for {book_id}: {e}")

        try:
            self.db.delete(book)
            self.db.commit()
        except Exception as e:
            logger.error(f"Delete failed: {e}")
            self.db.rollback()
            raise

        logger.info(f"Deleted book {book_id} ({book.title})")
        return True


# ==================== FastAPI Dependency ====================

def get_book_service(request: Request, db: Session = Depends(get_db)) -> BookService:
    """Get book service with DB session."""
    return BookService(db, request.app.state.storage)
