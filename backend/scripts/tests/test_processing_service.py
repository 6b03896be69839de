"""
Tests for the book processing pipeline, run end to end against generated PDFs.
"""
import asyncio

from sqlalchemy import select

from bookshelf.core.database import Book, Chapter, ExtractedImage, ProcessingProgress
from bookshelf.models.book import BookStatus, ProcessingStage, ExtractedTable, ExtractedImageData
from bookshelf.services.processing_service import (
    build_chapter_content, ProcessingAttempt, SECTION_SEPARATOR, CHAPTER_TITLE,
    SCANNED_PDF_MESSAGE, INTERRUPTED_MESSAGE
)
from bookshelf.utils.extractors.text_extractor import TextExtractor


def _run(processor, book_id):
    asyncio.run(processor.process(book_id))


def _load(database, book_id):
    with database.session() as db:
        book = db.get(Book, book_id)
        chapters = db.execute(select(Chapter).where(Chapter.book_id == book_id)).scalars().all()
        images = db.execute(select(ExtractedImage).where(ExtractedImage.book_id == book_id)).scalars().all()
        progress = db.get(ProcessingProgress, book_id)
        return book, chapters, images, progress


# ==================== Content Assembly ====================

def test_content_without_extras_is_plain_text():
    assert build_chapter_content("Hello world", [], []) == "Hello world"


def test_content_sections_and_markers():
    tables = [
        ExtractedTable(html="<table>a</table>", page_number=1, row_count=2, col_count=2),
        ExtractedTable(html="<table>b</table>", page_number=3, row_count=2, col_count=2),
    ]
    images = [
        ExtractedImageData(filename="page-1.png", page_number=1, width=10, height=10),
        ExtractedImageData(filename="page-4.png", page_number=4, width=10, height=10),
    ]

    content = build_chapter_content("Body", tables, images)

    assert content == (
        "Body"
        + SECTION_SEPARATOR + "[TABLE:0]\n<table>a</table>\n\n[TABLE:1]\n<table>b</table>"
        + SECTION_SEPARATOR + "[IMAGE:page-1.png]\n[IMAGE:page-4.png]"
    )
    assert build_chapter_content("Body", tables, images) == content


def test_content_with_images_only():
    images = [ExtractedImageData(filename="page-2.png", page_number=2, width=1, height=1)]

    assert build_chapter_content("Body", [], images) == "Body" + SECTION_SEPARATOR + "[IMAGE:page-2.png]"


# ==================== Pipeline ====================

def test_text_only_pdf_becomes_ready(processor, database, storage, create_book, text_pdf):
    book_id = create_book(text_pdf, "Nineteen.pdf")

    _run(processor, book_id)

    book, chapters, images, progress = _load(database, book_id)
    expected_text = TextExtractor().extract_bytes(text_pdf).text

    assert book.status == BookStatus.READY.value
    assert book.error_message is None
    assert book.total_pages == 1
    assert book.word_count > 0
    assert len(chapters) == 1
    assert chapters[0].title == CHAPTER_TITLE
    assert chapters[0].chapter_number == 1
    assert chapters[0].start_page == 1 and chapters[0].end_page == 1
    assert chapters[0].content == expected_text
    assert "---" not in chapters[0].content
    assert "[IMAGE:" not in chapters[0].content and "[TABLE:" not in chapters[0].content
    assert images == []
    assert progress.stage == ProcessingStage.READY.value
    assert progress.percent == 100


def test_blank_pdf_is_rejected_as_scanned(processor, database, create_book, blank_pdf):
    book_id = create_book(blank_pdf)

    _run(processor, book_id)

    book, chapters, images, progress = _load(database, book_id)
    assert book.status == BookStatus.ERROR.value
    assert "scanned" in book.error_message
    assert book.error_message == SCANNED_PDF_MESSAGE
    assert chapters == []
    assert progress.stage == ProcessingStage.FAILED.value


def test_image_failures_do_not_fail_the_book(processor, database, create_book, image_pdf, monkeypatch):
    def broken_render(page):
        raise RuntimeError("rasterizer exploded")

    monkeypatch.setattr(processor.image_extractor, "_render_page", broken_render)
    book_id = create_book(image_pdf)

    _run(processor, book_id)

    book, chapters, images, _ = _load(database, book_id)
    assert book.status == BookStatus.READY.value
    assert images == []
    assert "[IMAGE:" not in chapters[0].content


def test_missing_pdf_marks_error(processor, database, storage, create_book, text_pdf):
    book_id = create_book(text_pdf)
    storage.delete_book_files(book_id)

    _run(processor, book_id)

    book, chapters, _, _ = _load(database, book_id)
    assert book.status == BookStatus.ERROR.value
    assert "not found" in book.error_message
    assert chapters == []


def test_tables_are_appended_with_markers(processor, database, create_book, table_pdf):
    book_id = create_book(table_pdf)

    _run(processor, book_id)

    book, chapters, _, _ = _load(database, book_id)
    content = chapters[0].content
    assert book.status == BookStatus.READY.value
    assert SECTION_SEPARATOR + "[TABLE:0]\n<table><tr><th>Name</th>" in content
    assert "[TABLE:1]" not in content


def test_images_are_stored_and_referenced(processor, database, storage, create_book, image_pdf):
    book_id = create_book(image_pdf)

    _run(processor, book_id)

    book, chapters, images, _ = _load(database, book_id)
    assert book.status == BookStatus.READY.value
    assert [image.filename for image in images] == ["page-1.png"]
    assert chapters[0].content.endswith(SECTION_SEPARATOR + "[IMAGE:page-1.png]")
    assert storage.file_exists(f"images/{book_id}/page-1.png")


def test_table_failure_is_tolerated(processor, database, create_book, table_pdf, monkeypatch):
    def broken_tables(file_path):
        raise RuntimeError("layout analysis failed")

    monkeypatch.setattr(processor.table_extractor, "extract_tables", broken_tables)
    book_id = create_book(table_pdf)

    _run(processor, book_id)

    book, chapters, _, _ = _load(database, book_id)
    assert book.status == BookStatus.READY.value
    assert "[TABLE:" not in chapters[0].content


def test_persist_failure_marks_error(processor, database, create_book, text_pdf, monkeypatch):
    def broken_metadata(book, info):
        raise RuntimeError("disk full")

    monkeypatch.setattr(processor, "_metadata_updates", broken_metadata)
    book_id = create_book(text_pdf)

    _run(processor, book_id)

    book, chapters, _, _ = _load(database, book_id)
    assert book.status == BookStatus.ERROR.value
    assert book.error_message == "disk full"
    assert chapters == []


def test_unknown_book_is_a_no_op(processor, database):
    _run(processor, "does-not-exist")

    with database.session() as db:
        assert db.execute(select(Book)).scalars().all() == []


def test_retry_replaces_previous_results(processor, database, create_book, image_pdf):
    book_id = create_book(image_pdf)

    _run(processor, book_id)
    _run(processor, book_id)

    book, chapters, images, _ = _load(database, book_id)
    assert book.status == BookStatus.READY.value
    assert len(chapters) == 1
    assert len(images) == 1


def test_retry_after_error_clears_message(processor, database, storage, create_book, text_pdf):
    book_id = create_book(text_pdf)
    with database.session() as db:
        pdf_path = db.get(Book, book_id).pdf_path

    storage.delete_file(pdf_path)
    _run(processor, book_id)
    assert _load(database, book_id)[0].status == BookStatus.ERROR.value

    storage.save_file(pdf_path, text_pdf)
    _run(processor, book_id)

    book = _load(database, book_id)[0]
    assert book.status == BookStatus.READY.value
    assert book.error_message is None


def test_author_from_upload_is_kept(processor, database, create_book, text_pdf):
    book_id = create_book(text_pdf, author="George")

    _run(processor, book_id)

    assert _load(database, book_id)[0].author == "George"


# ==================== Stale Files / Recovery ====================

def test_retry_removes_images_no_longer_rendered(processor, storage, database, create_book, image_pdf, monkeypatch):
    book_id = create_book(image_pdf)
    _run(processor, book_id)
    assert storage.file_exists(f"images/{book_id}/page-1.png")

    def broken_render(page):
        raise RuntimeError("rasterizer exploded")

    monkeypatch.setattr(processor.image_extractor, "_render_page", broken_render)
    _run(processor, book_id)

    book, _, images, _ = _load(database, book_id)
    assert book.status == BookStatus.READY.value
    assert images == []
    assert storage.list_files(f"images/{book_id}") == []


def test_failed_attempt_leaves_no_images(processor, storage, database, create_book, image_pdf, monkeypatch):
    def broken_metadata(book, info):
        raise RuntimeError("disk full")

    monkeypatch.setattr(processor, "_metadata_updates", broken_metadata)
    book_id = create_book(image_pdf)

    _run(processor, book_id)

    book, chapters, images, _ = _load(database, book_id)
    assert book.status == BookStatus.ERROR.value
    assert chapters == [] and images == []
    assert storage.list_files(f"images/{book_id}") == []


def test_failed_retry_drops_previous_chapter(processor, storage, database, create_book, text_pdf):
    book_id = create_book(text_pdf)
    _run(processor, book_id)
    assert len(_load(database, book_id)[1]) == 1

    storage.delete_book_files(book_id)
    _run(processor, book_id)

    book, chapters, _, _ = _load(database, book_id)
    assert book.status == BookStatus.ERROR.value
    assert chapters == []


def test_error_write_is_ignored_once_the_attempt_is_settled(processor, database, create_book, text_pdf):
    book_id = create_book(text_pdf)
    _run(processor, book_id)

    stale = ProcessingAttempt(book_id)
    assert not processor._write_error(stale, "late failure")

    book, chapters, _, _ = _load(database, book_id)
    assert book.status == BookStatus.READY.value
    assert book.error_message is None
    assert len(chapters) == 1


def test_recover_interrupted_books(processor, database, storage, create_book, text_pdf):
    started = create_book(text_pdf)
    waiting = create_book(text_pdf)
    processor._begin_attempt(ProcessingAttempt(started))
    storage.save_file(f"images/{started}/page-1.png", b"png")

    assert processor.recover_interrupted() == 1

    book, _, _, progress = _load(database, started)
    assert book.status == BookStatus.ERROR.value
    assert book.error_message == INTERRUPTED_MESSAGE
    assert progress.stage == ProcessingStage.FAILED.value
    assert storage.list_files(f"images/{started}") == []

    assert _load(database, waiting)[0].status == BookStatus.PROCESSING.value
