"""
Extractors package - Specialized content extractors.

Available extractors:
- TextExtractor: page-ordered text, page count and metadata
- TableExtractor: position-based table detection rendered as HTML
- ImageExtractor: page rasterization to PNG
"""
from bookshelf.utils.extractors.text_extractor import TextExtractor
from bookshelf.utils.extractors.table_extractor import TableExtractor
from bookshelf.utils.extractors.image_extractor import ImageExtractor

__all__ = [
    'TextExtractor',
    'TableExtractor',
    'ImageExtractor'
]
