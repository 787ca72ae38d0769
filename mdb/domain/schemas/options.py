from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from bson import json_util
from pydantic import BaseModel, Field, field_validator
from pymongo import ASCENDING, DESCENDING

SortKey = Tuple[str, int]

# Sort used when sorting is requested without a key: creation order surrogate
DEFAULT_SORT: List[SortKey] = [("_id", ASCENDING)]


class UpdateOutcome(str, Enum):
    """Non-error results of an update."""
    INSERTED = "inserted"
    UPDATED = "updated"
    MATCHED = "matched"


def parse_sort_key(key: str) -> SortKey:
    """
    Parse one field sort key.

    A leading ``-`` means descending, a leading ``+`` or no prefix means
    ascending.

    Args:
        key: Field name with optional direction prefix, e.g. ``-created_at``

    Returns:
        (field, direction) pair

    Raises:
        ValueError: If the key has no field name
    """
    key = key.strip()
    direction = ASCENDING
    if key[:1] == "-":
        direction = DESCENDING
        key = key[1:]
    elif key[:1] == "+":
        key = key[1:]
    if not key:
        raise ValueError("Sort key has no field name")
    return key, direction


def format_sort(sort: List[SortKey]) -> str:
    """Render (field, direction) pairs back into the ``a,-b`` form."""
    return ",".join(
        ("-" if direction == DESCENDING else "") + field
        for field, direction in sort
    )


def render_json(value: Any) -> Any:
    """
    Render a document as indented JSON for logging.

    Returns the raw value when it can't be rendered.
    """
    try:
        return json_util.dumps(value, indent=3)
    except (TypeError, ValueError):
        return value


def in_array_projection(value: Any, field: str) -> Dict[str, Any]:
    """
    Build an aggregation expression telling if ``value`` is in array ``field``.

    Meant for ``$project`` stages, e.g.
    ``{"$project": {"liked": in_array_projection(user_id, "likes")}}``.
    """
    return {
        "$cond": [
            {"$eq": [{"$size": {"$setIntersection": [[value], "$" + field]}}, 1]},
            True,
            False,
        ]
    }


class Options(BaseModel):
    """Parameters of one query, update or removal."""
    find: Optional[Any] = Field(None, description="Filter document, or pipeline for aggregate")
    update: Optional[Any] = Field(None, description="Update document")
    select: Optional[Any] = Field(None, description="Projection document")
    skip: int = Field(0, ge=0, description="Number of matches to skip")
    limit: int = Field(0, ge=0, description="Maximum number of matches, 0 means no limit")
    sort: Optional[List[SortKey]] = Field(None, description="Ordered (field, direction) pairs")
    do_sort: bool = Field(False, description="Whether sorting is applied at all")
    upsert: bool = Field(False, description="Insert when nothing matches")
    multi: bool = Field(False, description="Apply to all matches instead of the first")

    @field_validator("sort", mode="before")
    @classmethod
    def parse_sort(cls, v: Any) -> Optional[List[SortKey]]:
        """Accept ``"a,-b"`` strings, ordered mappings and lists of keys or pairs."""
        if v is None:
            return None
        if isinstance(v, str):
            keys = [k for k in v.split(",") if k.strip()]
            return [parse_sort_key(k) for k in keys] or None
        if isinstance(v, Mapping):
            v = list(v.items())

        result = []
        for item in v:
            if isinstance(item, str):
                result.append(parse_sort_key(item))
            else:
                field, direction = item
                result.append((field, int(direction)))
        return result or None

    def form_sort_query(self) -> Optional[List[SortKey]]:
        """
        Sort specification to pass to the driver.

        Returns:
            None when sorting is off, ``DEFAULT_SORT`` when sorting is on
            without a key, the given keys otherwise
        """
        if not self.do_sort:
            return None
        if not self.sort:
            return list(DEFAULT_SORT)
        return list(self.sort)

    def log_fields(self, query_type: str) -> Dict[str, Any]:
        """
        Fields logged for a call of the given type.

        Args:
            query_type: One of ``get``, ``aggregate``, ``update``, ``remove``,
                ``count``, ``iterate``, ``find_and_modify``

        Returns:
            Mapping of log field names to values
        """
        fields: Dict[str, Any] = {
            "find": render_json(self.find),
            "multi": self.multi,
        }

        if query_type in ("get", "iterate"):
            if self.skip:
                fields["skip"] = self.skip
            if self.limit:
                fields["limit"] = self.limit
            if self.select is not None:
                fields["select"] = render_json(self.select)
            sort = self.form_sort_query()
            if sort is not None:
                fields["sort"] = format_sort(sort)
        elif query_type in ("update", "find_and_modify"):
            fields["upsert"] = self.upsert
            if self.update is not None:
                fields["update"] = render_json(self.update)
            if query_type == "find_and_modify" and self.select is not None:
                fields["select"] = render_json(self.select)

        return fields
