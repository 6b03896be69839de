from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text

from bookshelf.api.deps import get_database, get_job_manager, get_storage
from bookshelf.core.database import Database
from bookshelf.services.job_manager import ProcessingJobManager
from bookshelf.services.storage import LocalStorageService
from bookshelf.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.get("/health")
async def health_check(
        database: Database = Depends(get_database),
        storage: LocalStorageService = Depends(get_storage),
        jobs: ProcessingJobManager = Depends(get_job_manager)
):
    """Health check endpoint."""
    logger.info("Checking system health...")

    health_status = {
        "status": "healthy",
        "services": {},
        "active_jobs": len(jobs.active_jobs)
    }

    # Check Database
    try:
        logger.debug("Checking database connection...")
        with database.session() as db:
            db.execute(text("SELECT 1"))
        health_status["services"]["database"] = "healthy"
    except Exception as e:
        logger.error(f"Failed to connect to database: {e}")
        health_status["services"]["database"] = "unhealthy"
        health_status["status"] = "degraded"

    # Check Storage
    if storage.base_path.is_dir():
        health_status["services"]["storage"] = "healthy"
    else:
        logger.error(f"Storage root missing: {storage.base_path}")
        health_status["services"]["storage"] = "unhealthy"
        health_status["status"] = "degraded"

    status_code = 200 if health_status["status"] == "healthy" else 503
    logger.info(f"Health check endpoint received: {status_code}")
    return JSONResponse(content=health_status, status_code=status_code)
