"""
Collection handles exposing option-driven CRUD verbs.
"""

from mdb.infrastructure.repositories.collection import Collection, is_replacement

__all__ = ['Collection', 'is_replacement']
