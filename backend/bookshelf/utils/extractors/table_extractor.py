"""
Table Extractor - Handles table detection from PDFs.

Single responsibility: find tables in positioned text and render them as HTML.

Detection is position based: text fragments sharing a (bucketed) baseline
form a row, consecutive rows with two or more fragments form a candidate
table, and candidates with a stable column count are kept.
"""
import html
import math
from dataclasses import dataclass
from pathlib import Path
from statistics import mean
from typing import List, Optional, Sequence

import pdfplumber
import pdfplumber.page as pdf_page

from bookshelf.core.config import settings
from bookshelf.core.exceptions import TableDetectionError, ExtractionFailureReason
from bookshelf.models.book import ExtractedTable
from bookshelf.utils.logger import get_logger

logger = get_logger(__name__)

import logging
logging.getLogger("pdfminer").setLevel(logging.ERROR)

MIN_TABLE_ROWS = 2
MIN_TABLE_COLUMNS = 2
# Rows may differ from the mean column count by this much (merged cells)
MAX_COLUMN_DEVIATION = 1.5

# Gap (in points) that splits two fragments on the same baseline
FRAGMENT_GAP_TOLERANCE = 3


@dataclass
class TextFragment:
    """A run of text with its origin in PDF coordinates (y grows upwards)."""
    text: str
    x: float
    y: float


def is_valid_table(column_counts: Sequence[int]) -> bool:
    """
    Decide whether consecutive multi-fragment rows really form a table.

    Requires at least two rows, a mean column count of at least two and
    every row within MAX_COLUMN_DEVIATION of that mean.
    """
    if len(column_counts) < MIN_TABLE_ROWS:
        return False

    avg = mean(column_counts)
    if avg < MIN_TABLE_COLUMNS:
        return False

    return max(abs(count - avg) for count in column_counts) <= MAX_COLUMN_DEVIATION


def render_table_html(rows: Sequence[Sequence[str]]) -> str:
    """
    First row becomes header cells, the rest data cells.
    All cell text is HTML-escaped.
    """
    html_rows = []
    for index, row in enumerate(rows):
        tag = "th" if index == 0 else "td"
        cells = "".join(f"<{tag}>{html.escape(cell, quote=True)}</{tag}>" for cell in row)
        html_rows.append(f"<tr>{cells}</tr>")
    return f"<table>{''.join(html_rows)}</table>"


class TableExtractor:
    """Detects tables from text positions on PDF pages."""

    def __init__(self, row_tolerance: Optional[float] = None):
        """
        Initialize table extractor.

        Args:
            row_tolerance: Size of the y bucket that counts as one visual row
        """
        self.row_tolerance = row_tolerance or settings.TABLE_ROW_TOLERANCE

    def extract_tables(self, file_path: Path) -> List[ExtractedTable]:
        """
        Detect tables on every page of a PDF.

        A failure on one page is logged and that page skipped.

        Args:
            file_path: Path to PDF

        Returns:
            Tables in page order, top to bottom within a page

        Raises:
            TableDetectionError: the document could not be opened at all
        """
        tables: List[ExtractedTable] = []

        try:
            with pdfplumber.open(file_path) as pdf:
                for page_number, page in enumerate(pdf.pages, start=1):
                    try:
                        fragments = self._page_fragments(page)
                        page_tables = self.detect_page_tables(fragments, page_number)
                        tables.extend(page_tables)

                        if page_tables:
                            logger.debug(f"Detected {len(page_tables)} table(s) on page {page_number}")

                    except Exception as e:
                        logger.warning(f"Table detection failed for page {page_number}: {e}")

                    finally:
                        page.flush_cache()

        except Exception as e:
            raise TableDetectionError(
                f"Failed to extract tables from PDF: {e}",
                str(file_path),
                ExtractionFailureReason.UNKNOWN,
                cause=e
            ) from e

        return tables

    def detect_page_tables(
            self,
            fragments: Sequence[TextFragment],
            page_number: int
    ) -> List[ExtractedTable]:
        """
        Detect tables from the positioned fragments of one page.

        Args:
            fragments: Text fragments of the page
            page_number: 1-indexed page number

        Returns:
            List of ExtractedTable objects
        """
        candidates: List[List[List[TextFragment]]] = []
        current: List[List[TextFragment]] = []

        for row in self.group_rows(fragments):
            if len(row) >= MIN_TABLE_COLUMNS:
                current.append(row)
                continue

            if current:
                candidates.append(current)
            current = []

        if current:
            candidates.append(current)

        tables = []
        for candidate in candidates:
            column_counts = [len(row) for row in candidate]
            if not is_valid_table(column_counts):
                continue

            cell_rows = [[fragment.text for fragment in row] for row in candidate]
            tables.append(ExtractedTable(
                html=render_table_html(cell_rows),
                page_number=page_number,
                row_count=len(candidate),
                col_count=max(column_counts)
            ))

        return tables

    def group_rows(self, fragments: Sequence[TextFragment]) -> List[List[TextFragment]]:
        """
        Bucket fragments into visual rows.

        Returns:
            Rows top to bottom, each sorted left to right
        """
        buckets = {}
        for fragment in fragments:
            key = self._row_key(fragment.y)
            buckets.setdefault(key, []).append(fragment)

        return [
            sorted(buckets[key], key=lambda fragment: fragment.x)
            for key in sorted(buckets, reverse=True)
        ]

    def _row_key(self, y: float) -> float:
        """Round y half-up to the nearest multiple of the row tolerance."""
        return math.floor(y / self.row_tolerance + 0.5) * self.row_tolerance

    def _page_fragments(self, page: pdf_page.Page) -> List[TextFragment]:
        """
        Positioned text fragments of a page.

        Spaces are kept inside fragments so a line of prose stays one
        fragment; only visible gaps split text into cells.
        """
        words = page.extract_words(
            keep_blank_chars=True,
            x_tolerance=FRAGMENT_GAP_TOLERANCE,
            y_tolerance=FRAGMENT_GAP_TOLERANCE,
        )

        page_height = float(page.height)
        fragments = []
        for word in words:
            text = word["text"].strip()
            if not text:
                continue
            fragments.append(TextFragment(
                text=text,
                x=float(word["x0"]),
                y=page_height - float(word["bottom"])
            ))
        return fragments
