"""
Shared fixtures: isolated settings, database and storage per test, plus
small PDFs generated on the fly with PyMuPDF.
"""
import random

import fitz
import pytest

from bookshelf.core.config import Settings
from bookshelf.core.database import Database
from bookshelf.services.book_service import BookService
from bookshelf.services.processing_service import BookProcessor
from bookshelf.services.storage import LocalStorageService
from bookshelf.utils.extractors import TextExtractor, TableExtractor, ImageExtractor

PROSE_LINES = [
    "It was a bright cold day in April and the clocks were striking thirteen.",
    "The hallway smelt of boiled cabbage and old rag mats at one end of it.",
    "A coloured poster too large for indoor display had been tacked to the wall.",
    "It depicted simply an enormous face more than a metre wide and very calm.",
]

TABLE_ROWS = [
    ["Name", "Pages", "Year"],
    ["Dune", "412", "1965"],
    ["Emma", "474", "1815"],
]


def _write_prose(page: fitz.Page, top: float = 72) -> float:
    """Each prose line is a single text run, returns the next free y."""
    y = top
    for line in PROSE_LINES:
        page.insert_text((72, y), line, fontsize=11)
        y += 18
    return y


def _noise_pixmap(size: int = 160) -> fitz.Pixmap:
    """Random RGB pixels so the rendered page does not compress to nothing."""
    rng = random.Random(7)
    samples = bytes(rng.randrange(256) for _ in range(size * size * 3))
    return fitz.Pixmap(fitz.csRGB, size, size, samples, False)


def make_text_pdf() -> bytes:
    doc = fitz.open()
    page = doc.new_page()
    _write_prose(page)
    data = doc.tobytes()
    doc.close()
    return data


def make_table_pdf() -> bytes:
    doc = fitz.open()
    page = doc.new_page()
    y = _write_prose(page) + 30
    for row in TABLE_ROWS:
        for column, cell in enumerate(row):
            page.insert_text((72 + column * 140, y), cell, fontsize=11)
        y += 20
    data = doc.tobytes()
    doc.close()
    return data


def make_image_pdf() -> bytes:
    doc = fitz.open()
    page = doc.new_page()
    y = _write_prose(page)
    page.insert_image(fitz.Rect(72, y + 20, 272, y + 220), pixmap=_noise_pixmap())
    data = doc.tobytes()
    doc.close()
    return data


def make_blank_pdf() -> bytes:
    doc = fitz.open()
    doc.new_page()
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def test_settings(tmp_path):
    return Settings(DATA_DIR=tmp_path / "data", DEBUG=False)


@pytest.fixture
def database(test_settings):
    db = Database(test_settings.DATABASE_URL)
    db.create_tables()
    yield db
    db.dispose()


@pytest.fixture
def storage(test_settings):
    return LocalStorageService(test_settings.STORAGE_DIR)


@pytest.fixture
def processor(database, storage):
    return BookProcessor(
        database=database,
        storage=storage,
        text_extractor=TextExtractor(max_file_size=10 * 1024 * 1024),
        table_extractor=TableExtractor(row_tolerance=3.0),
        image_extractor=ImageExtractor(storage, scale=1.0, min_image_bytes=1024, render_all_pages=False),
        extract_tables=True,
        extract_images=True,
    )


@pytest.fixture
def create_book(database, storage):
    """Store PDF bytes and create a PROCESSING book, returns its id."""
    def _create(data: bytes, filename: str = "sample.pdf", author: str = None) -> str:
        with database.session() as db:
            return BookService(db, storage).create_book(data, filename, author=author).id
    return _create


@pytest.fixture
def text_pdf() -> bytes:
    return make_text_pdf()


@pytest.fixture
def table_pdf() -> bytes:
    return make_table_pdf()


@pytest.fixture
def image_pdf() -> bytes:
    return make_image_pdf()


@pytest.fixture
def blank_pdf() -> bytes:
    return make_blank_pdf()
