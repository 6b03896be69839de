"""
Tests for text heuristics and filename helpers.
"""
from bookshelf.utils.helper import (
    is_scanned_pdf, get_word_count, is_pdf, safe_filename, title_from_filename
)

LOREM = (
    "Lorem ipsum dolor sit amet consectetur adipiscing elit sed do eiusmod tempor "
    "incididunt ut labore et dolore magna aliqua Ut enim ad minim veniam quis nostrud "
    "exercitation ullamco laboris nisi ut aliquip ex ea commodo consequat Duis aute "
    "irure dolor in reprehenderit in voluptate velit esse cillum dolore eu fugiat nulla "
    "pariatur Excepteur sint occaecat cupidatat non proident sunt in culpa qui officia"
)


def test_empty_text_is_scanned():
    assert is_scanned_pdf("")
    assert is_scanned_pdf(None)
    assert is_scanned_pdf("   \n\t ")


def test_few_words_is_scanned():
    assert is_scanned_pdf("one two three")


def test_long_words_but_few_of_them_is_scanned():
    # Well over 100 characters, only 10 words
    text = " ".join(["supercalifragilistic"] * 10)
    assert len(text) > 100
    assert is_scanned_pdf(text)


def test_many_short_words_under_char_threshold_is_scanned():
    text = " ".join(["a"] * 40)
    assert is_scanned_pdf(text)


def test_real_text_is_not_scanned():
    assert len(LOREM.split()) >= 50
    assert not is_scanned_pdf(LOREM)


def test_word_count():
    assert get_word_count("") == 0
    assert get_word_count("   \n ") == 0
    assert get_word_count(None) == 0
    assert get_word_count("hello world") == 2
    assert get_word_count("  a\n\nb\tc  ") == 3


def test_is_pdf():
    assert is_pdf(b"%PDF-1.7\n...")
    assert not is_pdf(b"GIF89a")
    assert not is_pdf(b"")


def test_safe_filename_strips_directories():
    assert safe_filename("C:\\docs\\My Book.pdf") == "My Book.pdf"
    assert safe_filename("../../etc/passwd") == "passwd"
    assert safe_filename("..") == "original.pdf"
    assert safe_filename(None) == "original.pdf"


def test_title_from_filename():
    assert title_from_filename("My Book.pdf") == "My Book"
    assert title_from_filename("NOTES.PDF") == "NOTES"
    assert title_from_filename(".pdf") == "Untitled"
