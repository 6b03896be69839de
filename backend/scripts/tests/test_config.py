"""
Tests for settings defaults and validation.
"""
from bookshelf.core.config import Settings


def test_defaults_live_under_data_dir(tmp_path):
    settings = Settings(DATA_DIR=tmp_path)

    assert settings.DATABASE_URL == f"sqlite:///{tmp_path / 'bookshelf.db'}"
    assert settings.STORAGE_DIR == tmp_path / "storage"
    assert settings.PDF_DIR.is_dir()
    assert settings.IMAGE_DIR.is_dir()
    assert settings.validate_required_settings() == []


def test_explicit_database_url_is_kept(tmp_path):
    settings = Settings(DATA_DIR=tmp_path, DATABASE_URL="sqlite:///:memory:")

    assert settings.DATABASE_URL == "sqlite:///:memory:"


def test_invalid_limits_are_reported(tmp_path):
    settings = Settings(
        DATA_DIR=tmp_path,
        MAX_UPLOAD_SIZE=200,
        MAX_PDF_SIZE=100,
        MAX_CONCURRENT_JOBS=0,
        IMAGE_SCALE=0,
    )

    errors = settings.validate_required_settings()

    assert "MAX_UPLOAD_SIZE must not exceed MAX_PDF_SIZE" in errors
    assert "MAX_CONCURRENT_JOBS must be at least 1" in errors
    assert "IMAGE_SCALE must be positive" in errors
