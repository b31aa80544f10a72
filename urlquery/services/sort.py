from __future__ import annotations

from enum import IntEnum
from typing import Any

from urlquery.core.errors import InvalidDirectiveError, NoSortFieldError
from urlquery.services.extract import ARRAY_DELIMITER, DIRECTIVE_PREFIX, iter_params

LIMIT_PARAM = "limit"
SKIP_PARAM = "skip"
SORT_PARAM = "sort"

SORT_ASC_PREFIX = "+"
SORT_DESC_PREFIX = "-"

# limit and skip must fit a signed 31-bit integer
MAX_INT_DIRECTIVE = 2**30 - 1


class SortDirection(IntEnum):
    ASC = 1
    DESC = -1


def directive_values(params: Any, name: str) -> list[str]:
    key = DIRECTIVE_PREFIX + name
    return [value for param, value in iter_params(params) if param == key]


def sort_tokens(params: Any) -> list[str]:
    tokens: list[str] = []
    for value in directive_values(params, SORT_PARAM):
        tokens.extend(value.split(ARRAY_DELIMITER))
    return tokens


def parse_sort_token(token: str) -> tuple[str, SortDirection]:
    direction = SortDirection.ASC
    field_name = token.removeprefix(SORT_ASC_PREFIX)
    if field_name.startswith(SORT_DESC_PREFIX):
        direction, field_name = SortDirection.DESC, field_name[len(SORT_DESC_PREFIX):]
    if not field_name:
        raise NoSortFieldError(reason=f"empty sort token {token!r}")
    return field_name, direction


def parse_int_directive(params: Any, name: str) -> int:
    values = directive_values(params, name)
    text = values[0] if values else ""
    if not text:
        return 0
    if not (text.isascii() and text.isdigit()):
        raise InvalidDirectiveError(DIRECTIVE_PREFIX + name, value=text, reason=f"{text!r} is not a non-negative integer")
    value = int(text)
    if value > MAX_INT_DIRECTIVE:
        raise InvalidDirectiveError(DIRECTIVE_PREFIX + name, value=text, reason=f"{text!r} is out of range")
    return value
