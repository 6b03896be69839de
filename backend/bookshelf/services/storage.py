"""
Local file storage for uploaded PDFs and rendered page images.

Layout under the storage root:
- pdfs/{book_id}/{filename}
- images/{book_id}/{filename}

All paths handed to the service are relative to the root; anything that
would resolve outside of it is rejected.
"""
import shutil
from pathlib import Path
from typing import List, Union

from bookshelf.core.exceptions import StorageError
from bookshelf.utils.logger import get_logger

logger = get_logger(__name__)


def get_pdf_path(book_id: str, filename: str = "original.pdf") -> str:
    return f"pdfs/{book_id}/{filename}"


def get_image_path(book_id: str, filename: str) -> str:
    return f"images/{book_id}/{filename}"


class LocalStorageService:
    """Stores files on the local filesystem under a base directory."""

    def __init__(self, base_path: Union[str, Path]):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Storage root: {self.base_path}")

    # ==================== Path Handling ====================

    def get_file_path(self, path: str) -> Path:
        """
        Resolve a storage-relative path to an absolute path.

        Raises:
            StorageError: path is empty, contains null bytes or escapes the root
        """
        if not path or "\x00" in path:
            raise StorageError(f"Invalid storage path: {path!r}", path)

        full_path = (self.base_path / path).resolve()
        if full_path != self.base_path and self.base_path not in full_path.parents:
            raise StorageError(f"Path escapes storage root: {path}", path)

        return full_path

    # ==================== File Operations ====================

    def save_file(self, path: str, data: bytes) -> Path:
        """Write bytes to storage, creating parent folders. Returns the absolute path."""
        full_path = self.get_file_path(path)
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to save file {path}: {e}", path, cause=e) from e

        logger.debug(f"Saved: {path} ({len(data)} bytes)")
        return full_path

    def get_file(self, path: str) -> bytes:
        full_path = self.get_file_path(path)
        try:
            return full_path.read_bytes()
        except FileNotFoundError as e:
            raise StorageError(f"File not found: {path}", path, cause=e) from e
        except OSError as e:
            raise StorageError(f"Failed to read file {path}: {e}", path, cause=e) from e

    def file_exists(self, path: str) -> bool:
        try:
            return self.get_file_path(path).is_file()
        except StorageError:
            return False

    def get_file_size(self, path: str) -> int:
        full_path = self.get_file_path(path)
        try:
            return full_path.stat().st_size
        except FileNotFoundError as e:
            raise StorageError(f"File not found: {path}", path, cause=e) from e

    def delete_file(self, path: str) -> bool:
        """Delete a single file. Returns False when it did not exist."""
        full_path = self.get_file_path(path)
        try:
            full_path.unlink()
            logger.debug(f"Deleted: {path}")
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete file {path}: {e}", path, cause=e) from e

    def list_files(self, prefix: str = "") -> List[str]:
        """List storage-relative paths of all files below a folder."""
        root = self.get_file_path(prefix) if prefix else self.base_path
        if not root.is_dir():
            return []

        return sorted(
            file.relative_to(self.base_path).as_posix()
            for file in root.rglob("*")
            if file.is_file()
        )

    def delete_folder(self, prefix: str) -> None:
        folder = self.get_file_path(prefix)
        if folder == self.base_path:
            raise StorageError("Refusing to delete the storage root", prefix)
        shutil.rmtree(folder, ignore_errors=True)

    def delete_book_images(self, book_id: str) -> None:
        """Remove every rendered image of a book, keeping its PDF."""
        self.delete_folder(f"images/{book_id}")

    def delete_book_files(self, book_id: str) -> None:
        """Remove the PDF and every rendered image of a book."""
        self.delete_folder(f"pdfs/{book_id}")
        self.delete_book_images(book_id)
        logger.info(f"Deleted storage files for book {book_id}")

    def clear(self) -> None:
        """Remove everything under the storage root."""
        for child in self.base_path.iterdir():
            if child.is_dir():
                shutil.rmtree(child, ignore_errors=True)
            else:
                child.unlink(missing_ok=True)
        logger.info(f"Storage cleared: {self.base_path}")
