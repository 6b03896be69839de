"""
Text Extractor - Handles text extraction from PDFs.

Single responsibility: turn a stored PDF into page-ordered plain text,
the page count and the document metadata.

PyMuPDF does the parsing; pdfplumber is the per-page fallback when
PyMuPDF cannot read a page's text layer.
"""
import io
from pathlib import Path
from typing import Optional

import fitz  # PyMuPDF
import pdfplumber

from bookshelf.core.config import settings
from bookshelf.core.exceptions import PDFExtractionError, ExtractionFailureReason
from bookshelf.models.book import TextExtractionResult
from bookshelf.utils.helper import PDF_MAGIC
from bookshelf.utils.logger import get_logger

logger = get_logger(__name__)

PAGE_SEPARATOR = "\n\n"

# The PDF header may be preceded by junk, but only within the first KB
HEADER_SEARCH_WINDOW = 1024


class TextExtractor:
    """Extracts text and metadata from PDF files."""

    def __init__(self, max_file_size: Optional[int] = None):
        """
        Initialize text extractor.

        Args:
            max_file_size: Reject files larger than this many bytes
        """
        self.max_file_size = max_file_size or settings.MAX_PDF_SIZE

    def extract(self, file_path: Path) -> TextExtractionResult:
        """
        Extract text from a PDF on disk.

        Args:
            file_path: Absolute path to the PDF

        Returns:
            TextExtractionResult with text, page count and metadata

        Raises:
            PDFExtractionError: file missing, too large, corrupt or unreadable
        """
        file_path = Path(file_path)

        if not file_path.is_file():
            raise PDFExtractionError(
                "PDF file not found",
                str(file_path),
                ExtractionFailureReason.FILE_NOT_FOUND
            )

        size = file_path.stat().st_size
        if size > self.max_file_size:
            raise self._too_large(str(file_path))

        try:
            data = file_path.read_bytes()
        except OSError as e:
            raise PDFExtractionError(
                f"Failed to read PDF file: {e}",
                str(file_path),
                ExtractionFailureReason.UNKNOWN,
                cause=e
            ) from e

        return self.extract_bytes(data, source=str(file_path))

    def extract_bytes(self, data: bytes, source: str = "<memory>") -> TextExtractionResult:
        """
        Extract text from an in-memory PDF.

        Args:
            data: Raw PDF bytes
            source: Path or identifier used in error messages

        Returns:
            TextExtractionResult
        """
        if len(data) > self.max_file_size:
            raise self._too_large(source)

        if PDF_MAGIC not in data[:HEADER_SEARCH_WINDOW]:
            raise PDFExtractionError(
                "Invalid or corrupted PDF file",
                source,
                ExtractionFailureReason.INVALID_OR_CORRUPT
            )

        doc = self._open(data, source)
        try:
            if doc.needs_pass:
                raise PDFExtractionError(
                    "Invalid or corrupted PDF file: document is password protected",
                    source,
                    ExtractionFailureReason.INVALID_OR_CORRUPT
                )

            page_count = doc.page_count
            # PyMuPDF repairs structurally empty files into zero-page documents
            if page_count == 0:
                raise PDFExtractionError(
                    "Invalid or corrupted PDF file: document has no pages",
                    source,
                    ExtractionFailureReason.INVALID_OR_CORRUPT
                )

            logger.debug(f"Extracting text from {page_count} pages: {source}")

            page_texts = [
                self._extract_page_text(doc, page_index, data)
                for page_index in range(page_count)
            ]

            info = {key: value for key, value in (doc.metadata or {}).items() if value}

        except PDFExtractionError:
            raise

        except Exception as e:
            logger.error(f"Text extraction failed for {source}: {e}", exc_info=True)
            raise PDFExtractionError(
                f"Failed to extract text from PDF: {e}",
                source,
                ExtractionFailureReason.UNKNOWN,
                cause=e
            ) from e

        finally:
            doc.close()

        text = PAGE_SEPARATOR.join(page_texts).strip()
        logger.info(f"Extracted {len(text)} characters from {page_count} pages")

        return TextExtractionResult(text=text, page_count=page_count, info=info)

    def _open(self, data: bytes, source: str) -> fitz.Document:
        """Open the PDF with PyMuPDF, mapping parser failures to INVALID_OR_CORRUPT."""
        try:
            return fitz.open(stream=data, filetype="pdf")
        except (fitz.FileDataError, RuntimeError, ValueError) as e:
            logger.warning(f"PyMuPDF could not open {source}: {e}")
            raise PDFExtractionError(
                "Invalid or corrupted PDF file",
                source,
                ExtractionFailureReason.INVALID_OR_CORRUPT,
                cause=e
            ) from e

    def _extract_page_text(self, doc: fitz.Document, page_index: int, data: bytes) -> str:
        """
        Extract text from one page, falling back to pdfplumber.

        Args:
            doc: Open PyMuPDF document
            page_index: 0-based page index
            data: Raw PDF bytes (for the fallback parser)

        Returns:
            Stripped page text ("" when neither parser can read it)
        """
        try:
            return (doc[page_index].get_text("text") or "").strip()

        except Exception as e:
            logger.warning(f"PyMuPDF failed for page {page_index + 1}: {e}")

        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                return (pdf.pages[page_index].extract_text() or "").strip()
        except Exception as e:
            logger.error(f"Failed to extract page {page_index + 1}: {e}")
            return ""

    def _too_large(self, source: str) -> PDFExtractionError:
        max_mb = self.max_file_size / 1024 / 1024
        return PDFExtractionError(
            f"PDF file exceeds maximum size of {max_mb:.0f}MB",
            source,
            ExtractionFailureReason.TOO_LARGE
        )

