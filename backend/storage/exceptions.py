"""Exceptions raised by the content store."""


class ContentStoreException(Exception):
    """Base exception for content store operations"""
    pass


class InvalidNameException(ContentStoreException):
    """Raised when a content name fails validation"""
    pass


class ContentNotFoundException(ContentStoreException):
    """Raised when a content item is not found"""
    pass


class RepositoryException(ContentStoreException):
    """Raised when an unexpected git operation fails"""
    pass
