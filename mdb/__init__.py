"""
Thin convenience layer over pymongo.

Connect with ``Database.init``, register collections with their indexes,
then call the option-driven verbs on the collection handles:

    db = Database.init("mongodb://localhost/app", logger=logging.getLogger("db"))
    users = db.add_collection("users", [IndexSpec(keys=["email"], unique=True)])
    users.create({"email": "a@example.com", "status": "pending"})
    users.get(Options(find={"status": "pending"}, multi=True, do_sort=True))
"""

from mdb.config import Settings, get_settings, load_env_file
from mdb.domain.schemas import (
    IndexSpec,
    Options,
    UpdateOutcome,
    in_array_projection,
)
from mdb.infrastructure.database import Database
from mdb.infrastructure.database.mongodb import MongoDBClient
from mdb.infrastructure.repositories import Collection
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
from mdb.utils.logger import configure_logging, get_logger

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "Settings",
    "get_settings",
    "load_env_file",

    # Handles
    "Database",
    "Collection",
    "MongoDBClient",

    # Schemas
    "IndexSpec",
    "Options",
    "UpdateOutcome",
    "in_array_projection",

    # Errors
    "MdbError",
    "DatabaseConnectionError",
    "IndexCreationError",
    "NotRegisteredError",
    "MissingQueryError",
    "NotFoundError",
    "NoChangeError",
    "DuplicateKeyError",

    # Logging
    "configure_logging",
    "get_logger",
]
