"""
MongoDB client implementation.

This package provides MongoDB-specific connection management: address
resolution, dial-time verification and scoped sessions.
"""

from mdb.infrastructure.database.mongodb.client import MongoDBClient, resolve_address

__all__ = ['MongoDBClient', 'resolve_address']
