"""
Schemas describing calls into the database layer.
"""

from mdb.domain.schemas.options import (
    DEFAULT_SORT,
    Options,
    UpdateOutcome,
    format_sort,
    in_array_projection,
    parse_sort_key,
    render_json,
)
from mdb.domain.schemas.index import IndexSpec, parse_index_key

__all__ = [
    "DEFAULT_SORT",
    "Options",
    "UpdateOutcome",
    "format_sort",
    "in_array_projection",
    "parse_sort_key",
    "render_json",
    "IndexSpec",
    "parse_index_key",
]
