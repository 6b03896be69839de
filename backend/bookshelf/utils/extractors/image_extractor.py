"""
Image Extractor - Handles page rasterization for PDFs.

Single responsibility: render pages that carry images to PNG files and
save them to storage as images/{book_id}/page-{n}.png.

Pages are rendered one at a time so only a single pixmap is alive at once.
"""
from pathlib import Path
from typing import List, Optional, Tuple

import fitz

from bookshelf.core.config import settings
from bookshelf.core.exceptions import ImageExtractionError, ExtractionFailureReason
from bookshelf.models.book import ExtractedImageData
from bookshelf.services.storage import LocalStorageService, get_image_path
from bookshelf.utils.logger import get_logger

logger = get_logger(__name__)


def page_image_filename(page_number: int) -> str:
    return f"page-{page_number}.png"


class ImageExtractor:
    """Rasterizes PDF pages and stores them as PNG files."""

    def __init__(
            self,
            storage: LocalStorageService,
            scale: Optional[float] = None,
            min_image_bytes: Optional[int] = None,
            render_all_pages: Optional[bool] = None
    ):
        """
        Initialize image extractor.

        Args:
            storage: Where rendered PNGs are written
            scale: Render scale factor (1.0 = 72 dpi)
            min_image_bytes: Encoded PNGs at or below this size are discarded
            render_all_pages: Render every page instead of only pages with embedded images
        """
        self.storage = storage
        self.scale = scale or settings.IMAGE_SCALE
        self.min_image_bytes = settings.MIN_IMAGE_BYTES if min_image_bytes is None else min_image_bytes
        self.render_all_pages = settings.RENDER_ALL_PAGES if render_all_pages is None else render_all_pages

    def extract_images(self, file_path: Path, book_id: str) -> List[ExtractedImageData]:
        """
        Render pages of a PDF and save them to storage.

        A failure on one page is logged and that page skipped.

        Args:
            file_path: Path to PDF
            book_id: Owning book, used for the storage folder

        Returns:
            List of image metadata, in page order

        Raises:
            ImageExtractionError: the document could not be opened at all
        """
        try:
            doc = fitz.open(file_path)
        except Exception as e:
            raise ImageExtractionError(
                f"Failed to extract images from PDF: {e}",
                str(file_path),
                ExtractionFailureReason.INVALID_OR_CORRUPT,
                cause=e
            ) from e

        images: List[ExtractedImageData] = []
        try:
            for page_index in range(doc.page_count):
                page_number = page_index + 1
                try:
                    page = doc[page_index]
                    if not self.render_all_pages and not page.get_images(full=True):
                        continue

                    image = self._save_page(page, page_number, book_id)
                    if image:
                        images.append(image)
                        logger.debug(f"Rendered page {page_number} ({image.width}x{image.height})")

                except Exception as e:
                    logger.warning(f"Failed to extract image from page {page_number}: {e}")

        finally:
            doc.close()

        return images

    def _save_page(self, page: fitz.Page, page_number: int, book_id: str) -> Optional[ExtractedImageData]:
        """Render one page and write it to storage, or None when the render is near-empty."""
        png_bytes, width, height = self._render_page(page)

        if len(png_bytes) <= self.min_image_bytes:
            logger.debug(f"Skipping near-empty render of page {page_number} ({len(png_bytes)} bytes)")
            return None

        filename = page_image_filename(page_number)
        self.storage.save_file(get_image_path(book_id, filename), png_bytes)

        return ExtractedImageData(
            filename=filename,
            page_number=page_number,
            width=width,
            height=height
        )

    def _render_page(self, page: fitz.Page) -> Tuple[bytes, int, int]:
        """Render a page at the configured scale; returns PNG bytes and pixel size."""
        pix = page.get_pixmap(matrix=fitz.Matrix(self.scale, self.scale), alpha=False)
        try:
            return pix.tobytes("png"), pix.width, pix.height
        finally:
            pix = None  # release Pixmap explicitly
