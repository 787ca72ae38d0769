from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Iterator, Optional, TypeVar
import threading
import time
from contextlib import contextmanager

from mdb.utils.logger import get_logger
from mdb.utils.exceptions import DatabaseConnectionError

logger = get_logger(__name__)

# Generic type for database connection
T = TypeVar('T')


class DatabaseConnection(ABC, Generic[T]):
    """
    Abstract database connection manager.

    This class provides a common interface for managing database connections:
    dial-time initialization, scoped acquisition of pooled connections and
    health checks. Pooling itself is left to the driver.
    """

    def __init__(
        self,
        connection_uri: str,
        database_name: str,
        connection_options: Optional[Dict[str, Any]] = None,
        pool_size: int = 10,
        connect_timeout: int = 30000
    ):
        """
        Initialize the database connection manager.

        Args:
            connection_uri: URI for database connection
            database_name: Name of the database to connect to
            connection_options: Additional driver options
            pool_size: Size of the connection pool
            connect_timeout: Connection timeout (ms)

        Raises:
            DatabaseConnectionError: If connection initialization fails
        """
        self.connection_uri = connection_uri
        self.database_name = database_name
        self.connection_options = connection_options or {}
        self.pool_size = pool_size
        self.connect_timeout = connect_timeout

        # Track connection statistics
        self._stats_lock = threading.Lock()
        self.stats = {
            "sessions_started": 0,
            "sessions_ended": 0,
            "last_connection_error": None,
            "last_successful_connection": None
        }

        try:
            self._initialize_pool()
            logger.info(
                f"Initialized database connection pool for {database_name}",
                extra={"data": {"database_name": database_name, "pool_size": pool_size}}
            )
        except DatabaseConnectionError:
            raise
        except Exception as e:
            logger.error(
                f"Failed to initialize database connection pool: {str(e)}",
                extra={"data": {"database_name": database_name}}
            )
            self.record_connection_error(e)
            raise DatabaseConnectionError(
                f"Database connection initialization failed: {str(e)}"
            ) from e

    def increment_stat(self, name: str) -> None:
        """Increment a counter in the connection statistics."""
        with self._stats_lock:
            self.stats[name] += 1

    def record_connection_error(self, error: Exception) -> None:
        """Remember the last connection error for health reporting."""
        self.stats["last_connection_error"] = {
            "timestamp": time.time(),
            "error": str(error)
        }

    @abstractmethod
    def _initialize_pool(self) -> None:
        """
        Initialize the connection pool.

        Raises:
            DatabaseConnectionError: If pool initialization fails
        """

    @abstractmethod
    def get_connection(self) -> T:
        """
        Get a connection from the pool.

        Raises:
            DatabaseConnectionError: If connection acquisition fails
        """

    @abstractmethod
    def close_connection(self, connection: T) -> None:
        """Return a connection to the pool."""

    @contextmanager
    def connection(self) -> Iterator[T]:
        """
        Context manager for database connections.

        The connection is returned to the pool on every exit path.

        Yields:
            A database connection from the pool
        """
        connection = None
        try:
            connection = self.get_connection()
            yield connection
        finally:
            if connection is not None:
                self.close_connection(connection)

    @abstractmethod
    def health_check(self) -> Dict[str, Any]:
        """Check database health status."""

    @abstractmethod
    def close(self) -> None:
        """Release every resource held by the pool."""

    def get_stats(self) -> Dict[str, Any]:
        """
        Get connection pool statistics.

        Returns:
            Dictionary containing connection pool statistics
        """
        with self._stats_lock:
            return dict(self.stats)
