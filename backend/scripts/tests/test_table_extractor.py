"""
Tests for position-based table detection.
"""
from bookshelf.utils.extractors.table_extractor import (
    TableExtractor, TextFragment, is_valid_table, render_table_html
)


def _row(y, *cells, start=50, step=100):
    return [TextFragment(text=cell, x=start + i * step, y=y) for i, cell in enumerate(cells)]


# ==================== Validity ====================

def test_stable_columns_with_merged_cell_are_a_table():
    # mean 2.75, max deviation 0.75
    assert is_valid_table([3, 3, 2, 3])


def test_two_rows_within_deviation_are_a_table():
    # mean 3.5, deviation exactly 1.5
    assert is_valid_table([2, 5])


def test_ragged_rows_are_rejected():
    # mean 4, deviation 2
    assert not is_valid_table([2, 6])


def test_single_row_is_rejected():
    assert not is_valid_table([4])
    assert not is_valid_table([])


# ==================== HTML ====================

def test_html_header_and_escaping():
    html = render_table_html([["Name", "Notes"], ["Tom & Jerry", "<b>\"quoted\"</b>"]])

    assert html.startswith("<table><tr><th>Name</th><th>Notes</th></tr>")
    assert "<td>Tom &amp; Jerry</td>" in html
    assert "<td>&lt;b&gt;&quot;quoted&quot;&lt;/b&gt;</td>" in html
    assert html.endswith("</tr></table>")


# ==================== Grouping ====================

def test_rows_sorted_top_to_bottom_and_left_to_right():
    extractor = TableExtractor(row_tolerance=3.0)
    fragments = [
        TextFragment("b", x=200, y=100.4),
        TextFragment("c", x=10, y=50),
        TextFragment("a", x=20, y=99.8),
    ]

    rows = extractor.group_rows(fragments)

    assert [[f.text for f in row] for row in rows] == [["a", "b"], ["c"]]


def test_detects_table_between_prose_lines():
    extractor = TableExtractor(row_tolerance=3.0)
    fragments = (
        _row(700, "A single line of prose")
        + _row(650, "Name", "Pages", "Year")
        + _row(630, "Dune", "412", "1965")
        + _row(610, "Emma", "474")
        + _row(560, "Closing paragraph")
    )

    tables = extractor.detect_page_tables(fragments, page_number=2)

    assert len(tables) == 1
    table = tables[0]
    assert table.page_number == 2
    assert table.row_count == 3
    assert table.col_count == 3
    assert "<th>Name</th><th>Pages</th><th>Year</th>" in table.html
    assert "<td>Emma</td><td>474</td>" in table.html


def test_prose_only_page_has_no_tables():
    extractor = TableExtractor(row_tolerance=3.0)
    fragments = _row(700, "First line") + _row(680, "Second line")

    assert extractor.detect_page_tables(fragments, page_number=1) == []


# ==================== Real PDFs ====================

def test_extracts_table_from_pdf(tmp_path, table_pdf):
    pdf_path = tmp_path / "table.pdf"
    pdf_path.write_bytes(table_pdf)

    tables = TableExtractor(row_tolerance=3.0).extract_tables(pdf_path)

    assert len(tables) == 1
    assert tables[0].row_count == 3
    assert tables[0].col_count == 3
    assert "<th>Name</th>" in tables[0].html
    assert "<td>Dune</td>" in tables[0].html


def test_text_pdf_has_no_tables(tmp_path, text_pdf):
    pdf_path = tmp_path / "text.pdf"
    pdf_path.write_bytes(text_pdf)

    assert TableExtractor(row_tolerance=3.0).extract_tables(pdf_path) == []
