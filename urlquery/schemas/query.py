from __future__ import annotations

from typing import Any, Callable, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field

from urlquery.core.errors import NoSortFieldError
from urlquery.services.filters import FilterDocument
from urlquery.services.operators import Operator
from urlquery.services.sort import parse_sort_token

DocElemFactory = Callable[[str, Any], Any]


class FieldSpec(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    converter: Optional[Callable[[str], Any]] = None
    required: bool = False


class ParsedField(NamedTuple):
    field: str
    operator: Operator
    values: List[str]


class Query(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    filter: FilterDocument = Field(default_factory=FilterDocument)
    sort: List[Any] = Field(default_factory=list)
    limit: int = 0
    skip: int = 0

    def add_filter(self, field: str, op: Operator, value: Any) -> None:
        self.filter.add(field, op, value)

    def add_sort(self, token: str, doc_elem: DocElemFactory) -> str:
        field, direction = parse_sort_token(token)
        try:
            elem = doc_elem(field, int(direction))
        except NoSortFieldError as exc:
            raise exc.with_context(field)
        except Exception as exc:
            raise NoSortFieldError(field, reason=str(exc)) from exc
        self.sort.append(elem)
        return field

    def to_find_kwargs(self) -> dict[str, Any]:
        return {
            "filter": self.filter.to_dict(),
            "sort": list(self.sort),
            "limit": self.limit,
            "skip": self.skip,
        }
