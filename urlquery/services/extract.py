from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from urlquery.core.errors import QueryError, UnknownOperatorError
from urlquery.services.operators import ARRAY_SUFFIX, Operator

DELIMITER = "__"
DIRECTIVE_PREFIX = DELIMITER
ARRAY_DELIMITER = ","

FieldsMap = dict[str, dict[Operator, list[str]]]


@dataclass
class Extraction:
    fields: FieldsMap = field(default_factory=dict)
    errors: list[QueryError] = field(default_factory=list)


def iter_params(params: Any) -> Iterator[tuple[str, str]]:
    if params is None:
        return
    multi_items = getattr(params, "multi_items", None)
    if callable(multi_items):
        yield from multi_items()
        return
    if isinstance(params, Mapping):
        for key, values in params.items():
            if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
                yield key, values
            else:
                for value in values:
                    yield key, value
        return
    for key, value in params:
        yield key, value


def normalize_field_path(name: str) -> str:
    # map[like][field] and map[like[field]] both become map.like.field
    return name.replace("[", ".").replace("]", "")


def parse_key(key: str) -> tuple[str, str]:
    field_name, sep, op_text = key.partition(DELIMITER)
    if not sep:
        if key.endswith(ARRAY_SUFFIX):
            field_name, op_text = key[: -len(ARRAY_SUFFIX)], Operator.IN_ARRAY.value
        else:
            op_text = Operator.EQ.value
    return normalize_field_path(field_name), op_text


def normalize_fields(fields: FieldsMap) -> FieldsMap:
    normalized: FieldsMap = {}
    for field_name, ops in fields.items():
        grouped: dict[Operator, list[str]] = {}
        for op, values in ops.items():
            if len(values) == 1 and op.needs_split:
                values = values[0].split(ARRAY_DELIMITER)
            grouped.setdefault(op.canonical, []).extend(values)

        result: dict[Operator, list[str]] = {}
        for op, values in grouped.items():
            if len(values) == 1 and op.is_multi_value:
                single = op.single_value_operator
                if single not in grouped and single not in result:
                    op = single
            result[op] = values
        normalized[field_name] = result
    return normalized


def extract_fields(params: Any) -> Extraction:
    extraction = Extraction()
    raw: FieldsMap = {}
    unknown: set[tuple[str, str]] = set()

    for key, value in iter_params(params):
        if key.startswith(DIRECTIVE_PREFIX):
            continue
        field_name, op_text = parse_key(key)
        if not Operator.is_valid(op_text):
            if (field_name, op_text) not in unknown:
                unknown.add((field_name, op_text))
                extraction.errors.append(UnknownOperatorError(field_name, operator=op_text))
            continue
        raw.setdefault(field_name, {}).setdefault(Operator(op_text), []).append(value)

    extraction.fields = normalize_fields(raw)
    return extraction
