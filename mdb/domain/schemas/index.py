from typing import Any, List, Mapping, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pymongo import IndexModel

from mdb.domain.schemas.options import parse_sort_key

IndexKey = Tuple[str, Union[int, str]]


def parse_index_key(key: str) -> IndexKey:
    """
    Parse one index key.

    Plain keys follow the sort convention (``-field`` is descending).
    Special index kinds are written ``$kind:field``, e.g. ``$text:body``
    or ``$2dsphere:location``.
    """
    key = key.strip()
    if key.startswith("$"):
        kind, sep, field = key[1:].partition(":")
        if not sep or not kind or not field:
            raise ValueError(f"Invalid index key: {key}")
        return field, kind
    return parse_sort_key(key)


class IndexSpec(BaseModel):
    """
    Description of one index ensured when a collection is registered.

    Also accepts the driver's own spelling, e.g.
    ``{"key": {"created_at": -1}, "expireAfterSeconds": 3600}``.
    """
    keys: List[IndexKey] = Field(
        ...,
        validation_alias=AliasChoices("keys", "key"),
        description="Ordered index keys"
    )
    unique: bool = Field(False, description="Reject duplicate key values")
    sparse: bool = Field(False, description="Skip documents missing the indexed fields")
    name: Optional[str] = Field(None, description="Index name, generated by the server if omitted")
    background: bool = Field(False, description="Build the index in the background")
    expire_after_seconds: Optional[int] = Field(
        None,
        ge=0,
        validation_alias=AliasChoices("expire_after_seconds", "expireAfterSeconds"),
        description="TTL in seconds"
    )

    @field_validator("keys", mode="before")
    @classmethod
    def parse_keys(cls, v: Any) -> List[IndexKey]:
        if isinstance(v, str):
            v = v.split(",")
        elif isinstance(v, Mapping):
            v = list(v.items())
        keys = [parse_index_key(item) if isinstance(item, str) else tuple(item) for item in v]
        if not keys:
            raise ValueError("An index needs at least one key")
        return keys

    def to_index_model(self) -> IndexModel:
        """Build the driver's index model."""
        kwargs = {}
        if self.unique:
            kwargs["unique"] = True
        if self.sparse:
            kwargs["sparse"] = True
        if self.name:
            kwargs["name"] = self.name
        if self.background:
            kwargs["background"] = True
        if self.expire_after_seconds is not None:
            kwargs["expireAfterSeconds"] = self.expire_after_seconds
        return IndexModel(list(self.keys), **kwargs)
