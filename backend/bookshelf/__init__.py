"""
This is the main package for the reading backend.

It contains subpackages for:
- api: API endpoints and request handling
- core: settings, database and error types
- models: API and pipeline data models
- services: storage, PDF processing and book management
- utils: logging, helpers and PDF extractors
"""

__version__ = "1.0.0"
