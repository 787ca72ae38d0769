from typing import Any, Dict, Iterator, Optional, Tuple
import time
from contextlib import contextmanager

from pymongo import MongoClient, uri_parser
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConfigurationError,
    ConnectionFailure,
    InvalidURI,
    PyMongoError,
)

from mdb.infrastructure.database.connection import DatabaseConnection
from mdb.utils.logger import get_logger
from mdb.utils.exceptions import DatabaseConnectionError

logger = get_logger(__name__)

DEFAULT_ADDRESS = "mongodb://localhost/"
DEFAULT_DATABASE = "test"


def resolve_address(
    address: Optional[str],
    default_address: str = DEFAULT_ADDRESS,
    default_database: str = DEFAULT_DATABASE
) -> Tuple[str, str]:
    """
    Resolve a connection address into a URI and a database name.

    Empty addresses fall back to ``default_address``. Addresses without a
    scheme, like ``localhost:27017/app``, are read as ``mongodb://`` URIs.
    When the URI names no database, ``default_database`` is used.

    Args:
        address: Connection address, may be empty
        default_address: Address used when ``address`` is empty
        default_database: Database used when the address names none

    Returns:
        (connection URI, database name)

    Raises:
        DatabaseConnectionError: If the address can't be parsed
    """
    uri = address or default_address
    if "://" not in uri:
        uri = "mongodb://" + uri

    try:
        parsed = uri_parser.parse_uri(uri)
    except (InvalidURI, ConfigurationError, ValueError) as e:
        raise DatabaseConnectionError(f"Invalid MongoDB address: {str(e)}", address=uri) from e

    return uri, parsed.get("database") or default_database


class MongoDBClient(DatabaseConnection[MongoClient]):
    """
    MongoDB client implementation.

    This class provides a MongoDB-specific implementation of the
    DatabaseConnection interface. Pooling, reconnection and timeouts belong
    to pymongo and are configured through the options given here.
    """

    def __init__(
        self,
        connection_uri: str,
        database_name: str,
        pool_size: int = 10,
        connect_timeout: int = 30000,
        server_selection_timeout: int = 30000,
        ping_on_connect: bool = True,
        **kwargs: Any
    ):
        """
        Initialize MongoDB client.

        Args:
            connection_uri: MongoDB connection URI
            database_name: Name of the database to connect to
            pool_size: Maximum size of the driver's connection pool
            connect_timeout: Connection timeout (ms)
            server_selection_timeout: Server selection timeout (ms)
            ping_on_connect: Whether to verify the server is reachable at startup
            **kwargs: Additional MongoClient options

        Raises:
            DatabaseConnectionError: If the connection can't be established
        """
        self.server_selection_timeout = server_selection_timeout
        self.ping_on_connect = ping_on_connect
        self._client: Optional[MongoClient] = None

        connection_options = {
            "maxPoolSize": pool_size,
            "connectTimeoutMS": connect_timeout,
            "serverSelectionTimeoutMS": server_selection_timeout,
            **kwargs
        }

        super().__init__(
            connection_uri=connection_uri,
            database_name=database_name,
            connection_options=connection_options,
            pool_size=pool_size,
            connect_timeout=connect_timeout
        )

    def _initialize_pool(self) -> None:
        """
        Create the MongoDB client, optionally verifying it with a ping.

        Raises:
            DatabaseConnectionError: If the server can't be reached
        """
        try:
            self._client = MongoClient(self.connection_uri, **self.connection_options)

            if self.ping_on_connect:
                self._client.admin.command('ping')

            self.stats["last_successful_connection"] = time.time()
            logger.info("Successfully connected to MongoDB")
        except PyMongoError as e:
            logger.error(f"Failed to connect to MongoDB: {str(e)}")
            self.record_connection_error(e)
            self._discard_client()
            raise DatabaseConnectionError(
                f"MongoDB connection failed: {str(e)}", address=self.connection_uri
            ) from e
        except Exception:
            self._discard_client()
            raise

    def _discard_client(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def get_connection(self) -> MongoClient:
        """
        Get MongoDB client.

        Raises:
            DatabaseConnectionError: If the client was closed
        """
        if self._client is None:
            raise DatabaseConnectionError("MongoDB client is closed", address=self.connection_uri)
        return self._client

    def close_connection(self, connection: MongoClient) -> None:
        """
        Return MongoDB client to pool.

        pymongo returns sockets to its pool by itself, so this is a no-op.
        """

    def get_database(self) -> Database:
        """Get the MongoDB database this client was created for."""
        return self.get_connection()[self.database_name]

    def get_collection(self, collection_name: str) -> Collection:
        """
        Get MongoDB collection.

        Args:
            collection_name: Name of the collection

        Returns:
            MongoDB collection
        """
        return self.get_database()[collection_name]

    @contextmanager
    def session(self) -> Iterator[ClientSession]:
        """
        Context manager for MongoDB sessions.

        The session is ended on every exit path. Errors raised inside the
        block propagate unchanged.

        Yields:
            A MongoDB session
        """
        with self.connection() as client:
            session = client.start_session()
            self.increment_stat("sessions_started")
            try:
                yield session
            finally:
                session.end_session()
                self.increment_stat("sessions_ended")

    def ping(self) -> bool:
        """
        Test connection to MongoDB.

        Raises:
            DatabaseConnectionError: If connection test fails
        """
        try:
            self.get_connection().admin.command('ping')
            return True
        except (ConnectionFailure, ConfigurationError) as e:
            logger.error(f"MongoDB ping failed: {str(e)}")
            self.record_connection_error(e)
            raise DatabaseConnectionError(f"MongoDB ping failed: {str(e)}") from e

    def health_check(self) -> Dict[str, Any]:
        """
        Check MongoDB health status.

        Returns:
            Dictionary containing health check results
        """
        try:
            start_time = time.time()
            server_info = self.get_connection().server_info()
            response_time = time.time() - start_time

            return {
                "status": "healthy",
                "response_time_ms": round(response_time * 1000, 2),
                "version": server_info.get("version", "unknown"),
                "database": self.database_name,
                "connection_pool": {"pool_size": self.pool_size},
                "stats": self.get_stats()
            }
        except (ConnectionFailure, ConfigurationError, DatabaseConnectionError) as e:
            logger.error(f"MongoDB health check failed: {str(e)}")
            return {
                "status": "unhealthy",
                "error": str(e),
                "stats": self.get_stats()
            }

    def close(self) -> None:
        """Close the MongoDB client and its pool."""
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.debug("Closed MongoDB client connection")
