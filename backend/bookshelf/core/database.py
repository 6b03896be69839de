"""
Database with Book, Chapter and Image persistence.

Tables:
- books: one row per uploaded PDF, carries the processing status
- chapters: extracted content (a single "Full Book" chapter per book)
- images: metadata for rasterized pages
- processing_progress: latest pipeline stage reported for a book
"""
from contextlib import contextmanager
from typing import Iterator

from fastapi import Request
from sqlalchemy import (
    create_engine, Column, String, DateTime, ForeignKey,
    Text, Integer
)
from sqlalchemy.orm import Session, sessionmaker, relationship, declarative_base
from sqlalchemy.sql import func

from bookshelf.utils.logger import get_logger

logger = get_logger(__name__)

Base = declarative_base()


# ==================== Database Models ====================

class Book(Base):
    """
    Represents an uploaded PDF and its processing lifecycle.
    """
    __tablename__ = "books"

    id = Column(String, primary_key=True, index=True)  # UUID
    title = Column(String, nullable=False)
    author = Column(String, nullable=True)
    pdf_path = Column(String, nullable=False)  # storage-relative: pdfs/{id}/{filename}

    # Filled in by the processing pipeline
    total_pages = Column(Integer, default=0, nullable=False)
    word_count = Column(Integer, default=0, nullable=False)

    status = Column(String, default="PROCESSING", nullable=False, index=True)
    error_message = Column(Text, nullable=True)
    # Token of the processing attempt allowed to write the terminal status
    attempt_id = Column(String, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    chapters = relationship(
        "Chapter", back_populates="book", cascade="all, delete-orphan",
        order_by="Chapter.chapter_number"
    )
    images = relationship(
        "ExtractedImage", back_populates="book", cascade="all, delete-orphan",
        order_by="ExtractedImage.page_number"
    )
    progress = relationship(
        "ProcessingProgress", back_populates="book", cascade="all, delete-orphan",
        uselist=False
    )


class Chapter(Base):
    """Extracted content for a book."""
    __tablename__ = "chapters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(String, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    chapter_number = Column(Integer, nullable=False)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    word_count = Column(Integer, default=0, nullable=False)
    start_page = Column(Integer, nullable=False)
    end_page = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    book = relationship("Book", back_populates="chapters")


class ExtractedImage(Base):
    """A rasterized page stored under images/{book_id}/."""
    __tablename__ = "images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(String, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    filename = Column(String, nullable=False)
    page_number = Column(Integer, nullable=False)
    width = Column(Integer, nullable=False)
    height = Column(Integer, nullable=False)

    book = relationship("Book", back_populates="images")


class ProcessingProgress(Base):
    """Last stage boundary the pipeline crossed for a book."""
    __tablename__ = "processing_progress"

    book_id = Column(String, ForeignKey("books.id", ondelete="CASCADE"), primary_key=True)
    stage = Column(String, nullable=False)
    percent = Column(Integer, default=0, nullable=False)
    message = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    book = relationship("Book", back_populates="progress")


# ==================== Engine / Session Owner ====================

class Database:
    """
    Owns the engine and session factory for the process.

    Created once at startup and handed to whoever needs sessions.
    """

    def __init__(self, database_url: str, echo: bool = False):
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        self.engine = create_engine(database_url, connect_args=connect_args, echo=echo)
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )

    def create_tables(self) -> None:
        """Create all database tables."""
        try:
            logger.info("Initializing database and creating tables...")
            Base.metadata.create_all(bind=self.engine)
            logger.info("✅ Database tables created: books, chapters, images, processing_progress")
        except Exception as e:
            logger.error(f"❌ Error creating database tables: {e}", exc_info=True)
            raise

    def reset(self) -> None:
        """
        Drop all tables and recreate them using SQLAlchemy metadata.
        """
        try:
            Base.metadata.drop_all(bind=self.engine)
            logger.info("Database tables dropped")

            Base.metadata.create_all(bind=self.engine)
            logger.info("Database tables recreated")
        except Exception as e:
            logger.error(f"Failed to reset database: {e}")
            raise

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Session scope for code running outside a request."""
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()


# ==================== FastAPI Dependency ====================

def get_db(request: Request) -> Iterator[Session]:
    """FastAPI dependency to get a database session."""
    db = request.app.state.database.SessionLocal()
    try:
        yield db
    finally:
        db.close()
