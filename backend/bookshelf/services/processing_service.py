"""
Book Processing Service - the PDF ingestion pipeline.

Pipeline per book:
1. Load book, check the PDF exists in storage
2. Extract text (fatal on failure)
3. Reject scanned / text-less PDFs (fatal)
4. Detect tables and render page images (best-effort, concurrently)
5. Assemble chapter content
6. Persist chapter, images and book metadata in one transaction

Whatever happens, a run that found its book leaves it READY or ERROR.
Progress is written at every stage boundary for status polling.

Every run is an attempt with its own token. The terminal write (READY or
ERROR) is a compare-and-set on that token while the book is PROCESSING,
so exactly one of them lands per attempt, even when a timeout fires
while a worker thread is still saving results.
"""
import asyncio
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from opentelemetry import trace
from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from bookshelf.core.config import settings
from bookshelf.core.database import (
    Database, Book, Chapter, ExtractedImage, ProcessingProgress
)
from bookshelf.core.exceptions import PDFExtractionError
from bookshelf.models.book import (
    BookStatus, ProcessingStage, StageResult, TextExtractionResult,
    ExtractedTable, ExtractedImageData
)
from bookshelf.services.storage import LocalStorageService
from bookshelf.utils.extractors.image_extractor import ImageExtractor
from bookshelf.utils.extractors.table_extractor import TableExtractor
from bookshelf.utils.extractors.text_extractor import TextExtractor
from bookshelf.utils.helper import is_scanned_pdf, get_word_count
from bookshelf.utils.logger import get_logger

logger = get_logger(__name__)
tracer = trace.get_tracer(__name__)

SECTION_SEPARATOR = "\n\n---\n\n"
CHAPTER_TITLE = "Full Book"

SCANNED_PDF_MESSAGE = "PDF appears to be scanned or contains no extractable text"
INTERRUPTED_MESSAGE = "Processing was interrupted"
UNKNOWN_ERROR_MESSAGE = "Unknown error during processing"


def build_chapter_content(
        text: str,
        tables: Sequence[ExtractedTable],
        images: Sequence[ExtractedImageData]
) -> str:
    """
    Assemble chapter content: text, then the table section, then image markers.

    Tables are tagged [TABLE:i] (0-based), images [IMAGE:filename], one per line.
    """
    content = text

    if tables:
        content += SECTION_SEPARATOR + "\n\n".join(
            f"[TABLE:{index}]\n{table.html}" for index, table in enumerate(tables)
        )

    if images:
        content += SECTION_SEPARATOR + "\n".join(
            f"[IMAGE:{image.filename}]" for image in images
        )

    return content


@dataclass
class ProcessingAttempt:
    """One run of the pipeline for a book."""
    book_id: str
    token: str = field(default_factory=lambda: uuid.uuid4().hex)
    # Worker-thread tasks started by this attempt; they outlive cancellation
    workers: List[asyncio.Task] = field(default_factory=list)


class BookProcessor:
    """
    Runs the extraction pipeline for one book at a time.

    The only component that writes book processing state, chapters and
    image rows.
    """

    def __init__(
            self,
            database: Database,
            storage: LocalStorageService,
            text_extractor: Optional[TextExtractor] = None,
            table_extractor: Optional[TableExtractor] = None,
            image_extractor: Optional[ImageExtractor] = None,
            extract_tables: Optional[bool] = None,
            extract_images: Optional[bool] = None
    ):
        self.database = database
        self.storage = storage
        self.text_extractor = text_extractor or TextExtractor()
        self.table_extractor = table_extractor or TableExtractor()
        self.image_extractor = image_extractor or ImageExtractor(storage)
        self.extract_tables = settings.PDF_EXTRACT_TABLES if extract_tables is None else extract_tables
        self.extract_images = settings.PDF_EXTRACT_IMAGES if extract_images is None else extract_images

        logger.info(
            f"BookProcessor initialized: "
            f"tables={self.extract_tables}, images={self.extract_images}"
        )

    # ==================== Entry Point ====================

    async def process(self, book_id: str, timeout_seconds: Optional[float] = None) -> None:
        """
        Process a book to a terminal state.

        Never raises except on cancellation, and even then the book is
        marked ERROR first. Returns only once every worker thread of the
        attempt has finished.

        Args:
            book_id: Book to process
            timeout_seconds: Wall-clock bound for the whole pipeline (None = unbounded)
        """
        attempt = ProcessingAttempt(book_id)

        with tracer.start_as_current_span("process_book") as span:
            span.set_attribute("book.id", book_id)
            try:
                await asyncio.wait_for(self._run(attempt), timeout=timeout_seconds)

            except asyncio.TimeoutError:
                logger.error(f"[Process] Processing timed out for book {book_id}")
                await self._fail(attempt, f"Processing timed out after {timeout_seconds:g} seconds")

            except asyncio.CancelledError:
                logger.warning(f"[Process] Processing cancelled for book {book_id}")
                await asyncio.shield(self._fail(attempt, INTERRUPTED_MESSAGE))
                raise

            except Exception as e:
                logger.error(f"[Process] Error processing book {book_id}: {e}", exc_info=True)
                span.record_exception(e)
                await self._fail(attempt, str(e) or UNKNOWN_ERROR_MESSAGE)

    async def _run(self, attempt: ProcessingAttempt) -> None:
        book_id = attempt.book_id

        book = await self._in_worker(attempt, self._begin_attempt, attempt)
        if book is None:
            logger.warning(f"[Process] Book not found, nothing to do: {book_id}")
            return

        logger.info(f"[Process] Book found: {book.title}, PDF path: {book.pdf_path}")

        if not self.storage.file_exists(book.pdf_path):
            await self._fail(attempt, f"PDF file not found at path: {book.pdf_path}")
            return

        pdf_path = self.storage.get_file_path(book.pdf_path)

        # Stage 1: text (mandatory)
        await self._report(attempt, ProcessingStage.EXTRACTING_TEXT)
        with tracer.start_as_current_span("extract_text"):
            text_result = await self._in_worker(attempt, self._extract_text, pdf_path)

        if not text_result.succeeded:
            await self._fail(attempt, text_result.error)
            return

        extraction: TextExtractionResult = text_result.value

        if is_scanned_pdf(extraction.text):
            logger.warning(f"[Process] PDF appears to be scanned or has no extractable text: {book_id}")
            await self._fail(attempt, SCANNED_PDF_MESSAGE)
            return

        word_count = get_word_count(extraction.text)
        logger.info(f"[Process] Extracted {extraction.page_count} pages, {word_count} words")

        # Stage 2: tables + images (best-effort, independent)
        await self._report(attempt, ProcessingStage.EXTRACTING_AUXILIARY)
        with tracer.start_as_current_span("extract_auxiliary"):
            tables_result, images_result = await asyncio.gather(
                self._in_worker(attempt, self._detect_tables, pdf_path),
                self._in_worker(attempt, self._extract_images, pdf_path, book_id),
            )

        tables = tables_result.value or []
        images = images_result.value or []

        content = build_chapter_content(extraction.text, tables, images)

        # Stage 3: persist atomically
        await self._report(attempt, ProcessingStage.PERSISTING)
        with tracer.start_as_current_span("persist"):
            persisted = await self._in_worker(
                attempt, self._persist, attempt, content, word_count, extraction, images
            )

        if not persisted.succeeded:
            await self._fail(attempt, persisted.error)
            return

        if not persisted.value:
            logger.warning(f"[Process] Book {book_id} was deleted or superseded during processing, results dropped")
            return

        logger.info(f"[Process] Book {book_id} processed successfully")
        logger.info(
            f"[Process] Summary: {extraction.page_count} pages, {word_count} words, "
            f"{len(images)} images, {len(tables)} tables"
        )

    async def _in_worker(self, attempt: ProcessingAttempt, func: Callable, *args) -> Any:
        """
        Run blocking work in a thread, tracked by the attempt.

        Cancelling the caller does not stop the thread; `_drain` waits for it.
        """
        task = asyncio.ensure_future(asyncio.to_thread(func, *args))
        attempt.workers.append(task)
        return await asyncio.shield(task)

    async def _drain(self, attempt: ProcessingAttempt) -> None:
        pending = [task for task in attempt.workers if not task.done()]
        if pending:
            logger.info(f"[Process] Waiting for {len(pending)} worker(s) of book {attempt.book_id} to finish")
            await asyncio.wait(pending)

        for task in attempt.workers:
            if not task.cancelled() and task.exception() is not None:
                logger.warning(f"[Process] Worker for book {attempt.book_id} failed: {task.exception()}")

    # ==================== Stages ====================

    def _extract_text(self, pdf_path: Path) -> StageResult[TextExtractionResult]:
        try:
            return StageResult.ok(self.text_extractor.extract(pdf_path))
        except PDFExtractionError as e:
            logger.error(f"[Process] Text extraction failed ({e.reason.value}): {e.pdf_path}")
            return StageResult.failed(e.message, fatal=True)
        except Exception as e:
            logger.error(f"[Process] Text extraction failed: {e}", exc_info=True)
            return StageResult.failed(f"Failed to extract text from PDF: {e}", fatal=True)

    def _detect_tables(self, pdf_path: Path) -> StageResult[List[ExtractedTable]]:
        if not self.extract_tables:
            return StageResult.ok([])
        try:
            tables = self.table_extractor.extract_tables(pdf_path)
            logger.info(f"[Process] Extracted {len(tables)} tables")
            return StageResult.ok(tables)
        except Exception as e:
            logger.warning(f"[Process] Table extraction failed (continuing): {e}")
            return StageResult.failed(str(e))

    def _extract_images(self, pdf_path: Path, book_id: str) -> StageResult[List[ExtractedImageData]]:
        if not self.extract_images:
            return StageResult.ok([])
        try:
            images = self.image_extractor.extract_images(pdf_path, book_id)
            logger.info(f"[Process] Extracted {len(images)} images")
            return StageResult.ok(images)
        except Exception as e:
            logger.warning(f"[Process] Image extraction failed (continuing): {e}")
            return StageResult.failed(str(e))

    # ==================== Persistence ====================

    @staticmethod
    def _claim(db: Session, attempt: ProcessingAttempt, **values):
        """
        Update the book only if this attempt still owns it and it is PROCESSING.

        Returns True when the row was updated. The UPDATE takes the write
        lock, so the check and the write cannot interleave with another
        terminal write.
        """
        result = db.execute(
            update(Book)
            .where(
                Book.id == attempt.book_id,
                Book.status == BookStatus.PROCESSING.value,
                Book.attempt_id == attempt.token,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _begin_attempt(self, attempt: ProcessingAttempt) -> Optional[Book]:
        """
        Reset the book to PROCESSING for this attempt and drop images
        rendered by earlier attempts. None if the book is gone.
        """
        with self.database.session() as db:
            book = db.get(Book, attempt.book_id)
            if book is None:
                return None

            book.status = BookStatus.PROCESSING.value
            book.error_message = None
            book.attempt_id = attempt.token
            self._set_progress(db, attempt.book_id, ProcessingStage.QUEUED)
            db.commit()

        self.storage.delete_book_images(attempt.book_id)
        return book

    def _persist(
            self,
            attempt: ProcessingAttempt,
            content: str,
            word_count: int,
            extraction: TextExtractionResult,
            images: Sequence[ExtractedImageData]
    ) -> StageResult[bool]:
        """
        Chapter + image rows + book update in a single transaction.

        Rows from an earlier successful attempt are replaced. Returns
        ok(False) when the book was deleted or this attempt no longer owns it.
        """
        book_id = attempt.book_id

        with self.database.session() as db:
            try:
                book = db.get(Book, book_id)
                if book is None:
                    return StageResult.ok(False)

                updates = self._metadata_updates(book, extraction.info)

                claimed = self._claim(
                    db, attempt,
                    status=BookStatus.READY.value,
                    error_message=None,
                    total_pages=extraction.page_count,
                    word_count=word_count,
                    **updates
                )
                if not claimed:
                    db.rollback()
                    return StageResult.ok(False)

                self._clear_results(db, book_id)

                db.add(Chapter(
                    book_id=book_id,
                    chapter_number=1,
                    title=CHAPTER_TITLE,
                    content=content,
                    word_count=word_count,
                    start_page=1,
                    end_page=extraction.page_count,
                ))

                db.add_all([
                    ExtractedImage(
                        book_id=book_id,
                        filename=image.filename,
                        page_number=image.page_number,
                        width=image.width,
                        height=image.height,
                    )
                    for image in images
                ])

                self._set_progress(db, book_id, ProcessingStage.READY)
                db.commit()
                return StageResult.ok(True)

            except Exception as e:
                db.rollback()
                logger.error(f"[Process] Failed to save results for {book_id}: {e}", exc_info=True)
                return StageResult.failed(str(e) or UNKNOWN_ERROR_MESSAGE, fatal=True)

    async def _fail(self, attempt: ProcessingAttempt, message: Optional[str]) -> None:
        """
        Record a fatal failure for the attempt, then wait for its workers.

        Images are removed once no worker can write any more of them.
        """
        marked = await self._mark_error(attempt, message or UNKNOWN_ERROR_MESSAGE)
        await self._drain(attempt)

        if marked:
            try:
                await asyncio.to_thread(self.storage.delete_book_images, attempt.book_id)
            except Exception as e:
                logger.warning(f"[Process] Could not remove images for book {attempt.book_id}: {e}")

    async def _mark_error(self, attempt: ProcessingAttempt, message: str) -> bool:
        """A failing write is logged, never retried."""
        logger.error(f"[Process] Book {attempt.book_id} failed: {message}")
        try:
            return await asyncio.to_thread(self._write_error, attempt, message)
        except Exception as e:
            logger.error(f"[Process] Could not record error for book {attempt.book_id}: {e}", exc_info=True)
            return False

    def _write_error(self, attempt: ProcessingAttempt, message: str) -> bool:
        with self.database.session() as db:
            if not self._claim(db, attempt, status=BookStatus.ERROR.value, error_message=message):
                db.rollback()
                logger.info(f"[Process] Book {attempt.book_id} already settled, error not recorded")
                return False

            self._clear_results(db, attempt.book_id)
            self._set_progress(db, attempt.book_id, ProcessingStage.FAILED)
            db.commit()
            return True

    def recover_interrupted(self) -> int:
        """
        Mark books left PROCESSING by a previous run of the service as ERROR.

        Only books that an attempt actually started on are touched; fresh
        uploads waiting for a trigger keep their status.
        """
        with self.database.session() as db:
            books = db.execute(
                select(Book).where(
                    Book.status == BookStatus.PROCESSING.value,
                    Book.attempt_id.is_not(None),
                )
            ).scalars().all()

            for book in books:
                book.status = BookStatus.ERROR.value
                book.error_message = INTERRUPTED_MESSAGE
                self._clear_results(db, book.id)
                self._set_progress(db, book.id, ProcessingStage.FAILED)

            db.commit()

        for book in books:
            self.storage.delete_book_images(book.id)

        if books:
            logger.warning(f"[Process] Marked {len(books)} interrupted book(s) as ERROR")
        return len(books)

    async def _report(self, attempt: ProcessingAttempt, stage: ProcessingStage) -> None:
        logger.info(f"[Process] Progress for {attempt.book_id}: {stage.percent}% - {stage.message}")
        await self._in_worker(attempt, self._write_progress, attempt, stage)

    def _write_progress(self, attempt: ProcessingAttempt, stage: ProcessingStage) -> None:
        with self.database.session() as db:
            book = db.get(Book, attempt.book_id)
            if book is None or book.attempt_id != attempt.token:
                return
            self._set_progress(db, attempt.book_id, stage)
            db.commit()

    @staticmethod
    def _clear_results(db: Session, book_id: str) -> None:
        """A book that ends in ERROR keeps no chapter or image rows."""
        db.execute(delete(Chapter).where(Chapter.book_id == book_id))
        db.execute(delete(ExtractedImage).where(ExtractedImage.book_id == book_id))

    @staticmethod
    def _set_progress(db: Session, book_id: str, stage: ProcessingStage) -> None:
        progress = db.get(ProcessingProgress, book_id)
        if progress is None:
            progress = ProcessingProgress(book_id=book_id)
            db.add(progress)

        progress.stage = stage.value
        progress.percent = stage.percent
        progress.message = stage.message

    @staticmethod
    def _metadata_updates(book: Book, info: Dict[str, Any]) -> Dict[str, Any]:
        """Take the author from the PDF metadata when the upload had none."""
        author = str(info.get("author") or "").strip()
        if author and not book.author:
            return {"author": author}
        return {}
