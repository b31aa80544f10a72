from __future__ import annotations

from typing import Any, Iterable, Protocol

from urlquery.core.errors import NoSortFieldError


class Primitives(Protocol):
    def regex(self, pattern: str, options: str) -> Any:
        ...

    def object_id(self, value: str) -> Any:
        ...

    def doc_elem(self, key: str, value: Any) -> Any:
        ...


class ExtendedJsonPrimitives:
    """Primitives in MongoDB Extended JSON (v2) shapes, safe to serialise as plain JSON."""

    def __init__(self, sort_fields: Iterable[str] | None = None):
        self.sort_fields = frozenset(sort_fields) if sort_fields else None

    def regex(self, pattern: str, options: str) -> dict[str, Any]:
        return {"$regularExpression": {"pattern": pattern, "options": options}}

    def object_id(self, value: str) -> dict[str, str]:
        if len(value) != 24:
            raise ValueError(f"object id must be 24 hex characters, got {len(value)}")
        return {"$oid": value.lower()}

    def doc_elem(self, key: str, value: Any) -> tuple[str, Any]:
        if self.sort_fields is not None and key not in self.sort_fields:
            raise NoSortFieldError(key, reason="sorting is not allowed")
        return key, value
