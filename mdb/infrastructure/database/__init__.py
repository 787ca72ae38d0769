"""
Database configuration and connection management.

This package provides the connection manager interface, the MongoDB client
and the database handle owning the collection registry.
"""

from mdb.infrastructure.database.connection import DatabaseConnection
from mdb.infrastructure.database.database import Database

__all__ = ['DatabaseConnection', 'Database']
