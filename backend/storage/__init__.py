"""Git-based content storage for the wiki"""
from .content import ContentItem, Page, Upload, PAGES, UPLOADS, validate_name, item_for_path, sort_items
from .content_store import ContentStore
from .exceptions import (
    ContentStoreException,
    InvalidNameException,
    ContentNotFoundException,
    RepositoryException,
)
from .repository import Repository, Outcome, Result

__all__ = [
    "ContentItem",
    "Page",
    "Upload",
    "PAGES",
    "UPLOADS",
    "validate_name",
    "item_for_path",
    "sort_items",
    "ContentStore",
    "ContentStoreException",
    "InvalidNameException",
    "ContentNotFoundException",
    "RepositoryException",
    "Repository",
    "Outcome",
    "Result",
]
