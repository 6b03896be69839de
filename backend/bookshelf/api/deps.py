"""
API Dependencies - Shared dependencies for FastAPI routes.

Long-lived objects (settings, database, storage, job manager) are built
once in the application lifespan and kept on `app.state`; these
functions hand them to routes so tests can swap them with
`app.dependency_overrides`.
"""
from fastapi import HTTPException, Request, status

from bookshelf.core.config import Settings
from bookshelf.core.database import Database
from bookshelf.services.job_manager import ProcessingJobManager
from bookshelf.services.storage import LocalStorageService
from bookshelf.utils.helper import is_pdf


# ==================== Configuration ====================

def get_app_settings(request: Request) -> Settings:
    """Settings the running app was built with."""
    return request.app.state.settings


# ==================== Services ====================

def get_database(request: Request) -> Database:
    return request.app.state.database


def get_storage(request: Request) -> LocalStorageService:
    return request.app.state.storage


def get_job_manager(request: Request) -> ProcessingJobManager:
    return request.app.state.job_manager


# ==================== Validation ====================

def validate_pdf_upload(data: bytes, max_size: int) -> None:
    """
    Validate an uploaded PDF.

    Raises:
        HTTPException: 413 when too large, 400 when empty or not a PDF
    """
    if len(data) > max_size:
        max_mb = max_size / 1024 / 1024
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {max_mb:.0f}MB limit"
        )

    if not data or not is_pdf(data):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid PDF file"
        )
