"""
Domain layer package.

This package contains the schemas that describe queries, updates and
indexes handed to the database layer.
"""

from mdb.domain.schemas import IndexSpec, Options, UpdateOutcome

__all__ = [
    "IndexSpec",
    "Options",
    "UpdateOutcome",
]
