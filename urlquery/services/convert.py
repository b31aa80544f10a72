from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from urlquery.core.errors import NoConverterError, NoMatchError, TooManyValuesError
from urlquery.services.operators import Operator
from urlquery.services.primitives import Primitives

ConvertFunc = Callable[[str], Any]

_INT_RE = re.compile(r"[+-]?[0-9]+")
_FLOAT_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|[+-]?(?:inf|infinity|nan)", re.IGNORECASE)
_OBJECT_ID_RE = re.compile(r"[0-9a-fA-F]{12}(?:[0-9a-fA-F]{12})?")
# strptime %f reads at most microseconds
_FRACTION_RE = re.compile(r"(\.[0-9]{6})[0-9]+")

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f%z",
)

_TRUE_VALUES = {"true", "yes"}
_FALSE_VALUES = {"false", "no"}


def to_str(val: str) -> str:
    return val


def to_bool(val: str) -> bool:
    text = val.lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise NoMatchError(value=val, reason=f"{val!r} is not a boolean")


def to_int(val: str) -> int:
    if not _INT_RE.fullmatch(val):
        raise NoMatchError(value=val, reason=f"{val!r} is not an integer")
    number = int(val)
    if not _INT64_MIN <= number <= _INT64_MAX:
        raise NoMatchError(value=val, reason=f"{val!r} is out of 64-bit range")
    return number


def to_float(val: str) -> float:
    if not _FLOAT_RE.fullmatch(val):
        raise NoMatchError(value=val, reason=f"{val!r} is not a number")
    return float(val)


def to_datetime(val: str) -> datetime:
    text = _FRACTION_RE.sub(r"\1", val, count=1)
    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    raise NoMatchError(value=val, reason=f"{val!r} is not a date")


def object_id(primitives: Primitives) -> ConvertFunc:
    factory = primitives.object_id

    def _convert(val: str) -> Any:
        if not _OBJECT_ID_RE.fullmatch(val):
            raise NoMatchError(value=val, reason=f"{val!r} is not an object id")
        try:
            return factory(val)
        except NoMatchError:
            raise
        except Exception as exc:
            raise NoMatchError(value=val, reason=f"object id factory rejected {val!r}") from exc

    return _convert


class TypeConverter:
    """Detects the type of a string value by trying converters in order.

    The boolean converter always goes first, then the object id converter when
    primitives are available, then ``funcs`` in the given order. The first
    converter that does not raise :class:`NoMatchError` wins.
    """

    def __init__(self, bool_convert: ConvertFunc = to_bool, primitives: Optional[Primitives] = None, *funcs: Optional[ConvertFunc]):
        self.bool_convert = bool_convert
        self.primitives = primitives
        self.funcs: list[ConvertFunc] = []
        if primitives is not None:
            self.funcs.append(object_id(primitives))
        self.funcs.extend(func for func in funcs if func is not None)

    def convert(self, val: str) -> Any:
        try:
            return self.bool_convert(val)
        except NoMatchError:
            pass
        for func in self.funcs:
            try:
                return func(val)
            except NoMatchError:
                continue
        raise NoMatchError(value=val, reason=f"no converter matched {val!r}")

    __call__ = convert


def default_converter(primitives: Optional[Primitives] = None, *, allow_string: bool = True) -> TypeConverter:
    return TypeConverter(to_bool, primitives, to_int, to_float, to_datetime, to_str if allow_string else None)


def convert_values(values: list[str], op: Operator, converter: Optional[ConvertFunc]) -> Any:
    if converter is None:
        raise NoConverterError(operator=op.value)
    if op.is_multi_value:
        return [converter(val) for val in values]
    if len(values) > 1:
        raise TooManyValuesError(operator=op.value, reason=f"{len(values)} values")
    if values:
        return converter(values[0])
    return None
