from __future__ import annotations

from typing import Any, Iterable


class QueryError(Exception):
    kind = "query_error"
    message = "query error"

    def __init__(self, field: str | None = None, *, operator: str | None = None, value: Any = None, reason: str | None = None):
        self.field = field
        self.operator = operator
        self.value = value
        self.reason = reason
        super().__init__(self._render())

    def __str__(self) -> str:
        return self._render()

    def with_context(self, field: str, operator: str | None = None) -> "QueryError":
        if self.field is None:
            self.field = field
        if self.operator is None:
            self.operator = operator
        return self

    def _render(self) -> str:
        parts = [self.message]
        if self.field is not None:
            target = self.field
            if self.operator is not None:
                target = f"{target}[{self.operator}]"
            parts.append(target)
        if self.reason:
            parts.append(self.reason)
        return ": ".join(parts)

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"kind": self.kind, "message": str(self)}
        if self.field is not None:
            detail["field"] = self.field
        if self.operator is not None:
            detail["operator"] = self.operator
        return detail


class UnknownOperatorError(QueryError):
    kind = "unknown_operator"
    message = "unknown operator"


class NoFieldSpecError(QueryError):
    kind = "no_field_spec"
    message = "no field spec"


class NoConverterError(QueryError):
    kind = "no_converter"
    message = "no converter"


class TooManyValuesError(QueryError):
    kind = "too_many_values"
    message = "too many values"


class NoMatchError(QueryError):
    kind = "no_match"
    message = "does not match"


class MissingFieldError(QueryError):
    kind = "missing_field"
    message = "missing required filter on field"


class NoSortFieldError(QueryError):
    kind = "no_sort_field"
    message = "no sort field spec"


class InvalidDirectiveError(QueryError):
    kind = "invalid_directive"
    message = "invalid directive value"


class QueryParseError(QueryError):
    kind = "parse_error"
    message = "parse"

    def __init__(self, errors: Iterable[QueryError], query: Any = None):
        self.errors = list(errors)
        self.query = query
        super().__init__(reason="; ".join(str(err) for err in self.errors))

    def has(self, error_cls: type[QueryError]) -> bool:
        return any(isinstance(err, error_cls) for err in self.errors)

    def to_detail(self) -> dict[str, Any]:
        return {"kind": self.kind, "errors": [err.to_detail() for err in self.errors]}
