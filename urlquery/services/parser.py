from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Callable

from urlquery.core.config import Settings, settings
from urlquery.core.errors import (
    MissingFieldError,
    NoFieldSpecError,
    NoMatchError,
    NoSortFieldError,
    QueryError,
    QueryParseError,
)
from urlquery.schemas.query import FieldSpec, ParsedField, Query
from urlquery.services.convert import ConvertFunc, TypeConverter, convert_values, default_converter, to_bool
from urlquery.services.extract import extract_fields, iter_params
from urlquery.services.operators import Operator
from urlquery.services.primitives import Primitives
from urlquery.services.sort import LIMIT_PARAM, SKIP_PARAM, parse_int_directive, parse_sort_token, sort_tokens

_LOG = logging.getLogger("urlquery.parser")

REGEX_SPECIAL_CHARS = ".*?+^$[](){}|-"
ESCAPE_SYMBOL = "\\"
START_ANCHOR = "^"


def _nop(val: str) -> str:
    return val


class Parser:
    def __init__(
        self,
        converter: TypeConverter | None = None,
        fields: dict[str, FieldSpec] | None = None,
        validate_fields: bool = False,
    ):
        self.converter = converter
        self.fields: dict[str, FieldSpec] = dict(fields or {})
        self.validate_fields = validate_fields
        self._escape_lock = Lock()
        self._escape_table: dict[int, str] | None = None

    @classmethod
    def from_settings(
        cls,
        primitives: Primitives | None,
        fields: dict[str, FieldSpec] | None = None,
        config: Settings = settings,
    ) -> "Parser":
        converter = default_converter(primitives, allow_string=config.QUERY_STRING_FALLBACK)
        return cls(converter, fields, validate_fields=config.QUERY_VALIDATE_FIELDS)

    @property
    def primitives(self) -> Primitives | None:
        if self.converter is None:
            return None
        return self.converter.primitives

    def regex_escape(self, val: str) -> str:
        if self._escape_table is None:
            with self._escape_lock:
                if self._escape_table is None:
                    self._escape_table = str.maketrans({c: ESCAPE_SYMBOL + c for c in REGEX_SPECIAL_CHARS})
        return val.translate(self._escape_table)

    def _starts_with(self, val: str) -> str:
        return START_ANCHOR + self.regex_escape(val)

    def _regex(self, options: str, translate: Callable[[str], str]) -> ConvertFunc | None:
        primitives = self.primitives
        if primitives is None:
            return None

        def _convert(val: str) -> Any:
            return primitives.regex(translate(val), options)

        return _convert

    def resolve_converter(self, field: str, op: Operator) -> ConvertFunc | None:
        spec = self.fields.get(field)
        if spec is None and self.validate_fields:
            raise NoFieldSpecError(field, operator=op.value)

        # pattern operators never go through the type chain
        if op.is_regex:
            return self._regex(op.regex_options, _nop)
        if op.is_contains:
            return self._regex(op.regex_options, self.regex_escape)
        if op.is_starts_with:
            return self._regex(op.regex_options, self._starts_with)

        if op.is_a(Operator.EXISTS):
            return self.converter.bool_convert if self.converter is not None else to_bool
        if spec is not None and spec.converter is not None:
            return spec.converter
        return self.converter

    def convert(self, parsed: ParsedField) -> Any:
        op = parsed.operator
        try:
            converter = self.resolve_converter(parsed.field, op)
            return convert_values(parsed.values, op, converter)
        except QueryError as exc:
            raise exc.with_context(parsed.field, op.value)
        except Exception as exc:
            # field converters may be any callable: int, Decimal, a dict lookup...
            raise NoMatchError(parsed.field, operator=op.value, reason=str(exc)) from exc

    def _parse_filter(self, params: list[tuple[str, str]], query: Query, errors: list[QueryError]) -> None:
        extraction = extract_fields(params)
        errors.extend(extraction.errors)

        for field, operators in extraction.fields.items():
            for op, values in operators.items():
                try:
                    value = self.convert(ParsedField(field, op, values))
                except QueryError as exc:
                    errors.append(exc)
                    continue
                query.add_filter(field, op, value)

        for name, spec in self.fields.items():
            if spec.required and name not in query.filter:
                errors.append(MissingFieldError(name))

    def _parse_sort(self, params: list[tuple[str, str]], query: Query, errors: list[QueryError]) -> None:
        tokens = sort_tokens(params)
        if not tokens:
            return

        primitives = self.primitives
        if primitives is None:
            errors.append(NoSortFieldError(reason="no primitives"))
            return

        for token in tokens:
            try:
                field, _ = parse_sort_token(token)
                if self.validate_fields and field not in self.fields:
                    raise NoSortFieldError(field)
                query.add_sort(token, primitives.doc_elem)
            except QueryError as exc:
                errors.append(exc)

    def compile(self, params: Any) -> tuple[Query, list[QueryError]]:
        pairs = list(iter_params(params))
        query = Query()
        errors: list[QueryError] = []

        self._parse_filter(pairs, query, errors)

        try:
            query.limit = parse_int_directive(pairs, LIMIT_PARAM)
        except QueryError as exc:
            errors.append(exc)
        try:
            query.skip = parse_int_directive(pairs, SKIP_PARAM)
        except QueryError as exc:
            errors.append(exc)

        self._parse_sort(pairs, query, errors)

        _LOG.debug(
            "compiled query fields=%d sort=%d limit=%d skip=%d errors=%d",
            len(query.filter),
            len(query.sort),
            query.limit,
            query.skip,
            len(errors),
        )
        return query, errors

    def parse(self, params: Any) -> Query:
        query, errors = self.compile(params)
        if errors:
            raise QueryParseError(errors, query)
        return query
