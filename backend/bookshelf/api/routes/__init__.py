from fastapi import APIRouter
from bookshelf.api.routes import books, processing, health

api_router = APIRouter()
api_router.include_router(books.router, prefix="/books", tags=["books"])
api_router.include_router(processing.router, prefix="/process", tags=["processing"])


__all__ = ["api_router", "health"]
