"""
Core configuration for the Bookshelf reading backend.

This module centralizes all application settings using Pydantic for type safety
and validation. Settings are loaded from environment variables.
"""
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """
    # ==================== Database Configuration (SQLite) ====================
    DATABASE_URL: str = ""

    # ==================== Pydantic Settings ====================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Keep the database next to the data it describes unless told otherwise
        if not self.DATABASE_URL:
            self.DATABASE_URL = f"sqlite:///{self.DATA_DIR / 'bookshelf.db'}"
        self._create_directories()

    APP_NAME: str = "Bookshelf Reader API"
    APP_VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"

    # ==================== Development Defaults ====================
    DEBUG: bool = True
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # CORS - Development default
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]

    # ==================== File Storage ====================
    DATA_DIR: Path = Path("data")

    @property
    def STORAGE_DIR(self) -> Path:
        return self.DATA_DIR / "storage"

    @property
    def PDF_DIR(self) -> Path:
        return self.STORAGE_DIR / "pdfs"

    @property
    def IMAGE_DIR(self) -> Path:
        return self.STORAGE_DIR / "images"

    # Upload constraints
    MAX_UPLOAD_SIZE: int = 52428800  # 50MB in bytes

    # ==================== PDF Processing ====================
    # Hard ceiling checked before the parser ever sees the file
    MAX_PDF_SIZE: int = 104857600  # 100MB in bytes

    PDF_EXTRACT_TABLES: bool = True
    PDF_EXTRACT_IMAGES: bool = True

    # Rasterization
    IMAGE_SCALE: float = 1.5
    MIN_IMAGE_BYTES: int = 1024
    RENDER_ALL_PAGES: bool = False

    # Table detection: y-coordinates are bucketed to this many points
    TABLE_ROW_TOLERANCE: float = 3.0

    # ==================== Background Jobs ====================
    PROCESSING_TIMEOUT_SECONDS: float = 300.0
    MAX_CONCURRENT_JOBS: int = 2

    # ==================== Telemetry ====================
    OTEL_ENABLED: bool = False
    OTEL_SERVICE_NAME: str = "bookshelf-reader"
    OTEL_EXPORTER_OTLP_ENDPOINT: str = "http://localhost:4318"

    # ==================== Logging ====================
    LOG_FORMAT: str = "%(asctime)s - %(name)s - [%(levelname)s] - %(message)s"

    def _create_directories(self) -> None:
        """Create necessary directories on initialization."""
        directories = [
            self.DATA_DIR,
            self.STORAGE_DIR,
            self.PDF_DIR,
            self.IMAGE_DIR,
        ]

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)

    def validate_required_settings(self) -> list[str]:
        """
        Validate settings that would make the pipeline misbehave.

        Returns:
            List of validation errors (empty if all valid)
        """
        errors = []

        if self.MAX_UPLOAD_SIZE > self.MAX_PDF_SIZE:
            errors.append("MAX_UPLOAD_SIZE must not exceed MAX_PDF_SIZE")

        if self.IMAGE_SCALE <= 0:
            errors.append("IMAGE_SCALE must be positive")

        if self.TABLE_ROW_TOLERANCE <= 0:
            errors.append("TABLE_ROW_TOLERANCE must be positive")

        if self.MAX_CONCURRENT_JOBS < 1:
            errors.append("MAX_CONCURRENT_JOBS must be at least 1")

        if self.PROCESSING_TIMEOUT_SECONDS <= 0:
            errors.append("PROCESSING_TIMEOUT_SECONDS must be positive")

        return errors


# ==================== Global Settings Instance ====================
settings = Settings()


# ==================== Helper Functions ====================
@lru_cache()
def get_settings() -> Settings:
    """
    Settings accessor for scripts and modules outside a request.

    Routes should read `request.app.state.settings` instead, so tests can
    build the app around their own instance.
    """
    return settings
