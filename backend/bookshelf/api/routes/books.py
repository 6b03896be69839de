"""
Book Management Routes.

Handles upload, listing, details, status polling, images and deletion.
Processing itself runs in the background (see routes/processing.py).
"""
from typing import Optional

from fastapi import APIRouter, UploadFile, File, Form, Query, Depends, HTTPException, status
from fastapi.responses import FileResponse

from bookshelf.api.deps import get_app_settings, get_job_manager, validate_pdf_upload
from bookshelf.core.config import Settings
from bookshelf.core.exceptions import BookAlreadyProcessingError, StorageError
from bookshelf.models.book import BookUploadResponse, BookStatusResponse, BookDetails
from bookshelf.services.book_service import BookService, get_book_service
from bookshelf.services.job_manager import ProcessingJobManager
from bookshelf.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


# ==================== Upload Book ====================

@router.post("/upload", response_model=BookUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_book(
        file: UploadFile = File(..., description="PDF document to upload"),
        author: Optional[str] = Form(None),
        process: bool = Query(False, description="Start processing right after upload"),
        service: BookService = Depends(get_book_service),
        jobs: ProcessingJobManager = Depends(get_job_manager),
        app_settings: Settings = Depends(get_app_settings)
):
    """
    Upload a PDF and create its book record.

    Process:
    1. Validate file (size, %PDF magic bytes)
    2. Save to pdfs/{book_id}/{filename}
    3. Create the book in PROCESSING state
    4. Optionally trigger processing

    Raises:
        400: Not a PDF
        413: File too large
        500: Storage or database failure
    """
    logger.info(f"Received upload: {file.filename}")

    # Read one byte past the limit so oversized files are detected without loading them whole
    data = await file.read(app_settings.MAX_UPLOAD_SIZE + 1)
    validate_pdf_upload(data, app_settings.MAX_UPLOAD_SIZE)

    try:
        book = service.create_book(data, file.filename, author=author)
    except StorageError as e:
        logger.error(f"Upload failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Upload failed"
        )

    if process:
        jobs.trigger(book.id)

    return BookUploadResponse(book_id=book.id)


# ==================== List Books ====================

@router.get("")
async def list_books(
        service: BookService = Depends(get_book_service)
):
    """
    List all books, newest first.
    """
    books = service.list_books()
    return {
        "books": [book.model_dump(by_alias=True, mode="json") for book in books]
    }


# ==================== Book Status ====================

@router.get("/{book_id}/status", response_model=BookStatusResponse)
async def get_book_status(
        book_id: str,
        service: BookService = Depends(get_book_service)
):
    """
    Processing status of a book, polled by the client while it is PROCESSING.
    """
    status_info = service.get_book_status(book_id)

    if not status_info:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book not found"
        )

    return status_info


# ==================== Book Details ====================

@router.get("/{book_id}", response_model=BookDetails)
async def get_book(
        book_id: str,
        service: BookService = Depends(get_book_service)
):
    """
    Book with its chapters and images.
    """
    book = service.get_book_details(book_id)

    if not book:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book not found"
        )

    return book


@router.get("/{book_id}/images/{filename}")
async def get_book_image(
        book_id: str,
        filename: str,
        service: BookService = Depends(get_book_service)
):
    """
    Serve a rendered page image referenced by an [IMAGE:filename] marker.
    """
    image_path = service.get_image_file(book_id, filename)

    if not image_path:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Image not found"
        )

    return FileResponse(image_path, media_type="image/png")


# ==================== Delete Book ====================

@router.delete("/{book_id}")
async def delete_book(
        book_id: str,
        service: BookService = Depends(get_book_service),
        jobs: ProcessingJobManager = Depends(get_job_manager)
):
    """
    Delete a book, its files, chapters and images.
    """
    if jobs.is_processing(book_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(BookAlreadyProcessingError(book_id))
        )

    if not service.delete_book(book_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book not found"
        )

    return {
        "success": True,
        "message": "Book deleted successfully"
    }
