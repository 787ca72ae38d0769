from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
import re

from pymongo import IndexModel
from pymongo.errors import PyMongoError

from mdb.config import Settings, get_settings
from mdb.domain.schemas.index import IndexSpec
from mdb.infrastructure.database.mongodb.client import MongoDBClient, resolve_address
from mdb.infrastructure.repositories.collection import Collection
from mdb.utils.exceptions import IndexCreationError, NotRegisteredError
from mdb.utils.logger import LoggerLike, with_fields

Index = Union[IndexSpec, IndexModel, Mapping[str, Any]]

_CREDENTIALS = re.compile(r"(://[^:/@]+):[^@/]*@")


def redact_address(address: str) -> str:
    """Hide the password of a connection address."""
    return _CREDENTIALS.sub(r"\1:***@", address)


class Database:
    """
    Database handle owning the driver client and the collection registry.

    Collections must be registered with ``add_collection`` before they can be
    looked up. The registry is filled at startup and then only read.
    """

    def __init__(
        self,
        client: MongoDBClient,
        logger: Optional[LoggerLike] = None,
        address: Optional[str] = None
    ):
        self.client = client
        self.name = client.database_name
        self.collections: Dict[str, Collection] = {}
        self.logger = with_fields(
            logger,
            db=self.name,
            address=redact_address(address or client.connection_uri)
        )

    @classmethod
    def init(
        cls,
        address: Optional[str] = None,
        logger: Optional[LoggerLike] = None,
        settings: Optional[Settings] = None
    ) -> "Database":
        """
        Connect to MongoDB.

        Args:
            address: Connection address, empty for the configured default
            logger: Logger for structured call tracing, None disables it
            settings: Settings to use, defaults to the cached settings

        Returns:
            Database handle

        Raises:
            DatabaseConnectionError: If the address can't be parsed or dialed
        """
        settings = settings or get_settings()
        uri, database_name = resolve_address(
            address,
            default_address=settings.MONGO_URI,
            default_database=settings.MONGO_DEFAULT_DATABASE
        )
        client = MongoDBClient(
            uri,
            database_name,
            pool_size=settings.MONGO_POOL_SIZE,
            connect_timeout=settings.MONGO_CONNECT_TIMEOUT_MS,
            server_selection_timeout=settings.MONGO_SERVER_SELECTION_TIMEOUT_MS,
            ping_on_connect=settings.MONGO_PING_ON_CONNECT
        )

        db = cls(client, logger=logger, address=uri)
        if db.logger is not None:
            db.logger.info("Database initiated")
        return db

    @staticmethod
    def _index_model(index: Index) -> IndexModel:
        if isinstance(index, IndexModel):
            return index
        if isinstance(index, IndexSpec):
            return index.to_index_model()
        return IndexSpec(**index).to_index_model()

    def add_collection(self, name: str, indexes: Optional[Iterable[Index]] = None) -> Collection:
        """
        Register a collection, ensuring its indexes exist.

        Args:
            name: Collection name
            indexes: Indexes to create, one at a time

        Returns:
            The registered collection handle

        Raises:
            IndexCreationError: If any index can't be created; the collection
                is not registered then
        """
        collection = self.client.get_collection(name)
        for index in indexes or []:
            try:
                collection.create_indexes([self._index_model(index)])
            except (PyMongoError, ValueError) as e:
                if self.logger is not None:
                    self.logger.error(
                        f"Failed to create index for collection {name}: {str(e)}",
                        extra={"data": {"collection": name}}
                    )
                raise IndexCreationError(name, e) from e

        handle = Collection(self.client, collection, logger=with_fields(self.logger, collection=name))
        self.collections[name] = handle
        if handle.logger is not None:
            handle.logger.info("Collection added to database")
        return handle

    def collection(self, name: str) -> Collection:
        """
        Look up a registered collection.

        Raises:
            NotRegisteredError: If ``name`` was never added
        """
        try:
            return self.collections[name]
        except KeyError:
            raise NotRegisteredError(name) from None

    def must_collection(self, name: str) -> Optional[Collection]:
        """Unchecked lookup, None when ``name`` was never added."""
        return self.collections.get(name)

    def collection_names(self) -> List[str]:
        return list(self.collections)

    def ping(self) -> bool:
        return self.client.ping()

    def health_check(self) -> Dict[str, Any]:
        health = self.client.health_check()
        health["collections"] = self.collection_names()
        return health

    def close(self) -> None:
        """Close the driver client. Registered handles are unusable afterwards."""
        self.client.close()
        if self.logger is not None:
            self.logger.info("Database closed")

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
