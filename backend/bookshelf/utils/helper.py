from pathlib import Path
from typing import Optional


PDF_MAGIC = b"%PDF"

# Below either threshold the text layer is treated as missing
SCANNED_MIN_CHARS = 100
SCANNED_MIN_WORDS = 20


def is_scanned_pdf(text: Optional[str]) -> bool:
    """
    Check whether extracted text looks like it came from a scanned/image-only PDF.

    Rules, in order:
    1. Empty or missing text is scanned.
    2. Fewer than 100 non-whitespace characters is scanned.
    3. Fewer than 20 whitespace-delimited words is scanned.
    """
    if not text:
        return True

    cleaned = "".join(text.split())
    if len(cleaned) < SCANNED_MIN_CHARS:
        return True

    if len(text.split()) < SCANNED_MIN_WORDS:
        return True

    return False


def get_word_count(text: Optional[str]) -> int:
    """Whitespace-delimited token count; blank text counts as 0."""
    if not text or not text.strip():
        return 0
    return len(text.split())


def is_pdf(data: bytes) -> bool:
    """Check the %PDF magic bytes."""
    return data[:4] == PDF_MAGIC


def safe_filename(filename: Optional[str], default: str = "original.pdf") -> str:
    """
    Strip any directory components from a client-supplied filename.
    'C:\\docs\\My Book.pdf' -> 'My Book.pdf'
    """
    if not filename:
        return default

    name = Path(filename.replace("\\", "/")).name.replace("\x00", "").strip()
    if name in {"", ".", ".."}:
        return default
    return name


def title_from_filename(filename: str) -> str:
    """'My Book.pdf' -> 'My Book'"""
    stem = filename[:-4] if filename.lower().endswith(".pdf") else filename
    return stem.strip() or "Untitled"
