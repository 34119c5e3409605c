"""
Custom Exceptions for the PC Shop search service
"""

from typing import Any


class PCShopException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details
        super().__init__(self.message)


class RecordNotFoundError(PCShopException):
    """Requested record not found in database"""

    pass


class ProductNotFoundError(RecordNotFoundError):
    """Product id does not exist in the relational store"""

    def __init__(self, product_id: str):
        super().__init__(
            f"Product with id={product_id} not found",
            details={"product_id": product_id},
        )
        self.product_id = product_id


# Encoder Exceptions
class EncodingError(PCShopException):
    """Encoder could not produce a vector (model, fetch, decode or timeout failure)"""

    pass


class EmptyInputError(EncodingError):
    """Blank text or empty image source passed to the encoder"""

    pass


class DimensionMismatchError(PCShopException):
    """Vector length differs from the expected dimension"""

    def __init__(self, expected: int, actual: int, context: str | None = None):
        message = f"Expected vector dimension {expected}, got {actual}"
        if context:
            message = f"{message} ({context})"
        super().__init__(message, details={"expected": expected, "actual": actual})
        self.expected = expected
        self.actual = actual


# VectorStore Exceptions
class VectorStoreError(PCShopException):
    """Embedding store operation failed"""

    pass


class StoreUnavailableError(VectorStoreError):
    """Embedding store unreachable (transport error, timeout or 5xx)"""

    pass


class VectorIndexError(VectorStoreError):
    """Failed to write or delete embedding records"""

    pass


class VectorSearchError(VectorStoreError):
    """Failed to query embedding records"""

    pass


# Indexing Exceptions
class IndexingError(PCShopException):
    """Product indexing pipeline failed at a given stage"""

    def __init__(self, message: str, *, product_id: str, stage: str):
        super().__init__(message, details={"product_id": product_id, "stage": stage})
        self.product_id = product_id
        self.stage = stage


# Queue Exceptions
class QueueError(PCShopException):
    """Queue operation failed"""

    pass


# Validation Exceptions
class ValidationError(PCShopException):
    """Input validation failed"""

    pass


class InvalidQueryError(ValidationError):
    """Search request carries neither text nor usable images"""

    pass
