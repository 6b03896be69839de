"""
Pydantic schemas for PDF processing and API responses - defines the book data structures for our system.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BookStatus(str, Enum):
    """
    Lifecycle of a book - a processing attempt ends in exactly one terminal status.
    """
    PROCESSING = "PROCESSING"
    READY = "READY"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self is not BookStatus.PROCESSING


class ProcessingStage(str, Enum):
    """
    Stage boundaries reported while a book is processed.
    """
    QUEUED = "queued"
    EXTRACTING_TEXT = "extracting_text"
    EXTRACTING_AUXILIARY = "extracting_auxiliary"
    PERSISTING = "persisting"
    READY = "ready"
    FAILED = "failed"

    @property
    def percent(self) -> int:
        return _STAGE_PROGRESS[self][0]

    @property
    def message(self) -> str:
        return _STAGE_PROGRESS[self][1]


_STAGE_PROGRESS = {
    ProcessingStage.QUEUED: (0, "Queued for processing"),
    ProcessingStage.EXTRACTING_TEXT: (33, "Extracting text..."),
    ProcessingStage.EXTRACTING_AUXILIARY: (66, "Extracting images and tables..."),
    ProcessingStage.PERSISTING: (100, "Saving extracted content..."),
    ProcessingStage.READY: (100, "Processing complete"),
    ProcessingStage.FAILED: (0, "Processing failed"),
}


def progress_for_status(status: str) -> int:
    """Coarse progress when no stage has been recorded for a book."""
    return {
        BookStatus.PROCESSING.value: 50,
        BookStatus.READY.value: 100,
        BookStatus.ERROR.value: 0,
    }.get(status, 0)


# ==================== Extraction Results ====================

class TextExtractionResult(BaseModel):
    """
    Output of the text extractor: page-ordered text plus document metadata.
    """
    text: str = Field("", description="Concatenated text of all pages in page order")
    page_count: int = Field(0, description="Declared page count of the PDF")
    info: Dict[str, Any] = Field(default_factory=dict, description="PDF metadata (author, title, producer...)")


class ExtractedTable(BaseModel):
    """
    A table detected from positioned text, already rendered to HTML.
    """
    html: str
    page_number: int = Field(..., description="1-indexed page where the table was found")
    row_count: int
    col_count: int


class ExtractedImageData(BaseModel):
    """
    Metadata for a rasterized page image written to storage.
    """
    filename: str = Field(..., description="File name under images/{book_id}/")
    page_number: int
    width: int = Field(..., description="Width in pixels of the rendered viewport")
    height: int = Field(..., description="Height in pixels of the rendered viewport")


T = TypeVar("T")


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """
    Outcome of a single pipeline stage.

    Either `ok` with a value, or failed with a reason. Only failures marked
    `fatal` stop the pipeline.
    """
    value: Optional[T] = None
    error: Optional[str] = None
    fatal: bool = False

    @classmethod
    def ok(cls, value: T) -> "StageResult[T]":
        return cls(value=value)

    @classmethod
    def failed(cls, reason: str, fatal: bool = False) -> "StageResult[T]":
        return cls(error=reason, fatal=fatal)

    @property
    def succeeded(self) -> bool:
        return self.error is None


# ==================== API Request/Response Models ====================

class CamelModel(BaseModel):
    """Serializes to camelCase on the wire, accepts snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class BookMetadata(CamelModel):
    total_pages: int = 0
    word_count: int = 0
    title: str
    author: Optional[str] = None


class BookStatusResponse(CamelModel):
    """
    Response for status polling during processing.
    """
    id: str
    status: BookStatus
    error: Optional[str] = None
    progress: int = Field(..., ge=0, le=100)
    stage: Optional[ProcessingStage] = None
    message: Optional[str] = None
    metadata: BookMetadata


class ProcessAcceptedResponse(CamelModel):
    accepted: bool = True
    book_id: str


class BookUploadResponse(CamelModel):
    success: bool = True
    book_id: str


class BookSummary(CamelModel):
    id: str
    title: str
    author: Optional[str] = None
    status: BookStatus
    created_at: Optional[datetime] = None


class ChapterResponse(CamelModel):
    id: int
    chapter_number: int
    title: str
    content: str
    word_count: int
    start_page: int
    end_page: int


class ImageResponse(CamelModel):
    id: int
    filename: str
    page_number: int
    width: int
    height: int


class BookDetails(CamelModel):
    id: str
    title: str
    author: Optional[str] = None
    status: BookStatus
    error_message: Optional[str] = None
    total_pages: int = 0
    word_count: int = 0
    created_at: Optional[datetime] = None
    chapters: List[ChapterResponse] = Field(default_factory=list)
    images: List[ImageResponse] = Field(default_factory=list)
