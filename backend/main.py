"""
Server entry point.

Usage:
    python backend/main.py
    uvicorn bookshelf.main:app --reload   (from backend/)
"""
import uvicorn

from bookshelf.core.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "bookshelf.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
