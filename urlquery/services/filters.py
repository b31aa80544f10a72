from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Union

from urlquery.services.operators import Operator

EQ_SYMBOL = Operator.EQ.db_operator

_MISSING = object()


@dataclass
class Scalar:
    value: Any


@dataclass
class Operators:
    values: dict[str, Any] = field(default_factory=dict)


FieldEntry = Union[Scalar, Operators]


def append_array(existing: Any, values: Any) -> list[Any]:
    # lists on either side are flattened one level; anything else is one element
    if existing is _MISSING or existing is None:
        head: list[Any] = []
    elif isinstance(existing, list):
        head = list(existing)
    else:
        head = [existing]
    if values is None:
        return head
    if isinstance(values, list):
        return head + values
    return head + [values]


class FilterDocument:
    def __init__(self) -> None:
        self._entries: dict[str, FieldEntry] = {}

    def add(self, field_name: str, op: Operator, value: Any) -> None:
        entry = self._entries.get(field_name)

        if isinstance(entry, Operators):
            ops = entry
        elif op is Operator.EQ:
            self._entries[field_name] = Scalar(value)
            return
        elif isinstance(entry, Scalar):
            ops = Operators({EQ_SYMBOL: entry.value})
        else:
            ops = Operators()

        symbol = op.db_operator
        if op.is_multi_value:
            value = append_array(ops.values.get(symbol, _MISSING), value)
        elif (op.is_pattern or op is Operator.EQ) and symbol in ops.values:
            # eq, eqa, co, re, sw... all share $eq
            value = append_array(ops.values[symbol], value)
        ops.values[symbol] = value
        self._entries[field_name] = ops

    def entry(self, field_name: str) -> FieldEntry | None:
        return self._entries.get(field_name)

    def fields(self) -> list[str]:
        return list(self._entries)

    def to_dict(self) -> dict[str, Any]:
        document: dict[str, Any] = {}
        for name, entry in self._entries.items():
            if isinstance(entry, Scalar):
                document[name] = entry.value
            else:
                document[name] = dict(entry.values)
        return document

    def __contains__(self, field_name: object) -> bool:
        return field_name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __repr__(self) -> str:
        return f"FilterDocument({self.to_dict()!r})"
