"""
Custom exceptions for the ontograph library.
"""
from typing import Any, List, Optional


class OntographError(Exception):
    """Base exception for all ontograph errors."""
    pass


class ConnectionError(OntographError):
    """Raised when there are issues connecting to a storage backend."""
    pass


class QueryError(OntographError):
    """Raised when there are issues with query execution."""
    pass


class QueryValidationError(OntographError):
    """Raised when a filter or query cannot be constructed from its input."""
    pass


class OntologyError(OntographError):
    """Base class for ontology-related errors."""
    def __init__(self, message: str, available_options: Optional[dict] = None):
        self.available_options = available_options
        super().__init__(message)


class ValidationError(OntographError):
    """Raised when a payload or domain object fails its declared constraints."""
    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message)


class NotFoundError(OntographError):
    """Raised when a referenced record is absent or not owned by the container."""
    pass


class ConflictError(OntographError):
    """Raised when a uniqueness constraint is violated."""
    pass


class TransactionError(OntographError):
    """Raised when there are issues with transaction operations."""
    pass


class PartialFailure(OntographError):
    """A single failed item of a batch operation.

    Batch operations return these alongside their successes instead of
    raising, so one bad item never aborts its siblings.
    """
    def __init__(self, item: Any, error: Exception):
        self.item = item
        self.error = error
        super().__init__(str(error))

    @property
    def is_error(self) -> bool:
        return True
