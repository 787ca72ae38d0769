"""
Utility modules shared across the package.

This package provides the exception hierarchy and logging helpers.
"""

from mdb.utils.exceptions import (
    MdbError,
    DatabaseConnectionError,
    IndexCreationError,
    NotRegisteredError,
    MissingQueryError,
    NotFoundError,
    NoChangeError,
    DuplicateKeyError,
)
from mdb.utils.logger import (
    StructuredLogFormatter,
    LoggerAdapter,
    configure_logging,
    get_logger,
    with_fields,
)

__all__ = [
    # Exceptions
    "MdbError",
    "DatabaseConnectionError",
    "IndexCreationError",
    "NotRegisteredError",
    "MissingQueryError",
    "NotFoundError",
    "NoChangeError",
    "DuplicateKeyError",

    # Logging
    "StructuredLogFormatter",
    "LoggerAdapter",
    "configure_logging",
    "get_logger",
    "with_fields",
]
