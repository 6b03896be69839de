"""
Error taxonomy for the reading backend.

Fatal pipeline errors (extraction, storage) carry enough context to be
written to `Book.error_message` verbatim. Table/image errors are
non-fatal and only ever logged.
"""
from enum import Enum
from typing import Optional


class BookshelfError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ExtractionFailureReason(str, Enum):
    FILE_NOT_FOUND = "file_not_found"
    INVALID_OR_CORRUPT = "invalid_or_corrupt"
    TOO_LARGE = "too_large"
    UNKNOWN = "unknown"


class PDFExtractionError(BookshelfError):
    """Raised when a PDF cannot be read or parsed."""

    def __init__(
            self,
            message: str,
            pdf_path: str,
            reason: ExtractionFailureReason = ExtractionFailureReason.UNKNOWN,
            cause: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.pdf_path = str(pdf_path)
        self.reason = reason
        self.cause = cause

    def __str__(self) -> str:
        return self.message


class TableDetectionError(PDFExtractionError):
    """Table detection failed for the whole document (non-fatal)."""


class ImageExtractionError(PDFExtractionError):
    """Page rasterization failed for the whole document (non-fatal)."""


class StorageError(BookshelfError):
    """Raised by the storage service for invalid paths or I/O failures."""

    def __init__(self, message: str, path: str = "", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.path = path
        self.cause = cause


class BookAlreadyProcessingError(BookshelfError):
    """A processing run for this book is already in flight."""

    def __init__(self, book_id: str):
        super().__init__(f"Book {book_id} is already being processed")
        self.book_id = book_id
