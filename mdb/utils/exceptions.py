from typing import Any, Dict, Optional


class MdbError(Exception):
    """Base exception class for the database layer."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Additional error details
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class DatabaseConnectionError(MdbError):
    """Raised when the connection address can't be parsed or dialed."""

    def __init__(self, message: str, address: Optional[str] = None):
        super().__init__(
            message=message,
            details={"address": address} if address else None
        )


class IndexCreationError(MdbError):
    """Exception for index creation failures at collection registration."""

    def __init__(self, collection: str, cause: Exception):
        """
        Initialize index creation exception.

        Args:
            collection: Name of the collection the index belongs to
            cause: Underlying driver error
        """
        self.collection = collection
        self.cause = cause
        super().__init__(
            message=f"{collection}: {cause}",
            details={"collection": collection}
        )


class NotRegisteredError(MdbError):
    """Exception for lookups of collections that were never added."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            message=f"There's no {name} collection",
            details={"collection": name}
        )


class MissingQueryError(MdbError):
    """Raised before reaching the driver when no filter (or update) is given."""

    def __init__(self, message: str = "No query specified"):
        super().__init__(message=message)


class NotFoundError(MdbError):
    """Raised when a single-document fetch or mutation matched nothing."""

    def __init__(self, message: str = "not found", collection: Optional[str] = None):
        super().__init__(
            message=message,
            details={"collection": collection} if collection else None
        )


class NoChangeError(MdbError):
    """Raised when a multi or upsert mutation ran but changed nothing."""

    def __init__(self, message: str = "Nothing fits query", collection: Optional[str] = None):
        super().__init__(
            message=message,
            details={"collection": collection} if collection else None
        )


class DuplicateKeyError(MdbError):
    """Exception for inserts that violate a unique index."""

    def __init__(self, message: str = "Is duplicate", collection: Optional[str] = None):
        super().__init__(
            message=message,
            details={"collection": collection} if collection else None
        )
