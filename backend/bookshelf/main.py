"""
Main FastAPI Application.

This is the entry point for the backend server.
It wires settings, database, storage and the processing job manager
together and exposes the REST API.
"""
from contextlib import asynccontextmanager
from typing import Optional

import dotenv
from fastapi import FastAPI

from bookshelf.api.middleware.cors import setup_cors
from bookshelf.api.middleware.error_handler import ErrorMiddleware
from bookshelf.api.routes import api_router, health
from bookshelf.core.config import Settings, settings as default_settings
from bookshelf.core.database import Database
from bookshelf.services.job_manager import ProcessingJobManager
from bookshelf.services.processing_service import BookProcessor
from bookshelf.services.storage import LocalStorageService
from bookshelf.utils.extractors import TextExtractor, TableExtractor, ImageExtractor
from bookshelf.utils.logger import get_logger

dotenv.load_dotenv()

logger = get_logger(__name__)


def build_processor(app_settings: Settings, database: Database, storage: LocalStorageService) -> BookProcessor:
    """Processor with extractors configured from settings."""
    return BookProcessor(
        database=database,
        storage=storage,
        text_extractor=TextExtractor(max_file_size=app_settings.MAX_PDF_SIZE),
        table_extractor=TableExtractor(row_tolerance=app_settings.TABLE_ROW_TOLERANCE),
        image_extractor=ImageExtractor(
            storage,
            scale=app_settings.IMAGE_SCALE,
            min_image_bytes=app_settings.MIN_IMAGE_BYTES,
            render_all_pages=app_settings.RENDER_ALL_PAGES,
        ),
        extract_tables=app_settings.PDF_EXTRACT_TABLES,
        extract_images=app_settings.PDF_EXTRACT_IMAGES,
    )


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI app around a settings instance."""
    app_settings = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        # Startup
        logger.info(f"Starting {app_settings.APP_NAME} v{app_settings.APP_VERSION}")
        logger.info(f"Environment: {'Development' if app_settings.DEBUG else 'Production'}")

        for error in app_settings.validate_required_settings():
            logger.warning(f"⚠️  Configuration: {error}")

        if app_settings.OTEL_ENABLED:
            from bookshelf.telemetry.setup import setup_telemetry
            setup_telemetry(app_settings.OTEL_SERVICE_NAME, app_settings.OTEL_EXPORTER_OTLP_ENDPOINT)
            logger.info(f"✅ Telemetry exporting to {app_settings.OTEL_EXPORTER_OTLP_ENDPOINT}")

        # Initialize database
        database = Database(app_settings.DATABASE_URL)
        database.create_tables()

        storage = LocalStorageService(app_settings.STORAGE_DIR)
        processor = build_processor(app_settings, database, storage)
        processor.recover_interrupted()

        app.state.settings = app_settings
        app.state.database = database
        app.state.storage = storage
        app.state.job_manager = ProcessingJobManager(
            processor,
            max_concurrent=app_settings.MAX_CONCURRENT_JOBS,
            timeout_seconds=app_settings.PROCESSING_TIMEOUT_SECONDS,
        )

        logger.info(f"🚀 Server ready at http://{app_settings.HOST}:{app_settings.PORT}")

        yield  # Server runs here

        # Shutdown
        logger.info("Shutting down gracefully...")
        await app.state.job_manager.shutdown()
        database.dispose()

    app = FastAPI(
        lifespan=lifespan,
        title=app_settings.APP_NAME,
        description="PDF ingestion and reading API",
        version=app_settings.APP_VERSION,
        debug=app_settings.DEBUG,
    )

    # Error middleware
    app.add_middleware(ErrorMiddleware, debug=app_settings.DEBUG)

    # CORS middleware
    setup_cors(app, app_settings.CORS_ORIGINS)

    # Routes
    app.include_router(health.router, prefix=app_settings.API_PREFIX, tags=["health"])
    app.include_router(api_router, prefix=app_settings.API_PREFIX)

    @app.get("/")
    async def root():
        """Root endpoint - API information."""
        return {
            "name": app_settings.APP_NAME,
            "version": app_settings.APP_VERSION,
            "status": "running",
            "docs": "/docs",
            "openapi": "/openapi.json"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    try:
        uvicorn.run(
            "bookshelf.main:app",
            host=default_settings.HOST,
            port=default_settings.PORT,
            reload=default_settings.DEBUG,  # Auto-reload in dev mode
            log_level=default_settings.LOG_LEVEL.lower()
        )
    except KeyboardInterrupt:
        logger.warning("Shutdown requested")
        logger.info("Goodbye")
