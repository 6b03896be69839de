"""
Processing Routes.

POST /process/{book_id} answers immediately; extraction continues in the
background and its outcome is only visible through the book status.
"""
from fastapi import APIRouter, Depends, HTTPException, status

from bookshelf.api.deps import get_job_manager
from bookshelf.core.exceptions import BookAlreadyProcessingError
from bookshelf.models.book import ProcessAcceptedResponse
from bookshelf.services.job_manager import ProcessingJobManager
from bookshelf.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/{book_id}",
    response_model=ProcessAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED
)
async def process_book(
        book_id: str,
        jobs: ProcessingJobManager = Depends(get_job_manager)
):
    """
    Trigger PDF processing (text, tables, images) for a book.

    Raises:
        409: The book is already being processed
    """
    logger.info(f"[Process] Starting processing for book: {book_id}")

    try:
        jobs.trigger(book_id)
    except BookAlreadyProcessingError as e:
        logger.warning(f"[Process] Duplicate trigger rejected: {book_id}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return ProcessAcceptedResponse(accepted=True, book_id=book_id)
