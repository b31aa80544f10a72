from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from urlquery.core.errors import UnknownOperatorError

IGNORE_CASE_PREFIX = "i"
IN_SUFFIX = "in"
ARRAY_SUFFIX = "[]"
DB_OPERATOR_PREFIX = "$"

_PATTERN_FAMILIES = ("re", "co", "sw")


class Operator(str, Enum):
    """Operator suffix of a query parameter, e.g. ``age__gte`` or ``tag__ire[]``."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    EXISTS = "exists"
    IN = "in"
    NIN = "nin"
    ALL = "all"
    EQA = "eqa"

    RE = "re"
    IRE = "ire"
    REIN = "rein"
    IREIN = "irein"

    CO = "co"
    ICO = "ico"
    COIN = "coin"
    ICOIN = "icoin"

    SW = "sw"
    ISW = "isw"
    SWIN = "swin"
    ISWIN = "iswin"

    # bracket spellings: values come from repeated parameters, never comma-split
    IN_ARRAY = "[]"
    ALL_ARRAY = "all[]"
    RE_ARRAY = "re[]"
    IRE_ARRAY = "ire[]"
    CO_ARRAY = "co[]"
    ICO_ARRAY = "ico[]"
    SW_ARRAY = "sw[]"
    ISW_ARRAY = "isw[]"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def is_valid(cls, text: str) -> bool:
        return text in _OPERATOR_VALUES

    @classmethod
    def parse(cls, text: str) -> "Operator":
        try:
            return cls(text)
        except ValueError:
            raise UnknownOperatorError(operator=text, reason=repr(text)) from None

    @property
    def traits(self) -> "OperatorTraits":
        return _TRAITS[self]

    @property
    def canonical(self) -> "Operator":
        return self.traits.canonical

    @property
    def is_bracket(self) -> bool:
        return self.value.endswith(ARRAY_SUFFIX)

    @property
    def is_multi_value(self) -> bool:
        return self.traits.multi_value

    @property
    def needs_split(self) -> bool:
        return self.traits.needs_split

    @property
    def is_regex(self) -> bool:
        return self.traits.family == "re"

    @property
    def is_contains(self) -> bool:
        return self.traits.family == "co"

    @property
    def is_starts_with(self) -> bool:
        return self.traits.family == "sw"

    @property
    def is_pattern(self) -> bool:
        return self.traits.family is not None

    @property
    def is_ignore_case(self) -> bool:
        return self.traits.ignore_case

    @property
    def single_value_operator(self) -> "Operator":
        return self.traits.single_value

    @property
    def db_operator(self) -> str:
        return self.traits.db_operator

    @property
    def regex_options(self) -> str:
        return IGNORE_CASE_PREFIX if self.traits.ignore_case else ""

    def is_a(self, other: "Operator") -> bool:
        """Subsumption: True when ``self`` belongs to the family ``other`` describes.

        ``irein``, ``ire[]`` and ``re[]`` are all ``re``; ``ico[]`` is ``ico``
        but ``co[]`` is not; ``all[]`` is only ``all[]`` and ``all``.
        """
        if self is Operator.ALL_ARRAY:
            return other in (Operator.ALL_ARRAY, Operator.ALL)
        if other.is_bracket:
            return self.value.endswith(other.value)

        text = self.value
        if self.is_bracket:
            text = text[: -len(ARRAY_SUFFIX)] + IN_SUFFIX
        if self.is_ignore_case and not other.is_ignore_case:
            text = text[len(IGNORE_CASE_PREFIX):]

        if other is Operator.IN:
            return text.endswith(IN_SUFFIX)
        return text.startswith(other.value)


@dataclass(frozen=True)
class OperatorTraits:
    canonical: Operator
    family: str | None
    ignore_case: bool
    multi_value: bool
    needs_split: bool
    single_value: Operator
    db_operator: str


def _canonical_text(text: str) -> str:
    if not text.endswith(ARRAY_SUFFIX):
        return text
    base = text[: -len(ARRAY_SUFFIX)]
    if base == Operator.ALL.value:
        return base
    return base + IN_SUFFIX


def _pattern_family(canonical: str) -> tuple[str | None, bool]:
    for family in _PATTERN_FAMILIES:
        for prefix, ignore_case in (("", False), (IGNORE_CASE_PREFIX, True)):
            if canonical in (prefix + family, prefix + family + IN_SUFFIX):
                return family, ignore_case
    return None, False


def _single_value_text(canonical: str) -> str:
    if canonical in (Operator.IN.value, Operator.ALL.value, Operator.EQ.value):
        return Operator.EQ.value
    if canonical == Operator.NIN.value:
        return Operator.NE.value
    if canonical.endswith(IN_SUFFIX):
        return canonical[: -len(IN_SUFFIX)]
    return canonical


def _db_operator(canonical: str, family: str | None, multi_value: bool) -> str:
    if multi_value and canonical not in (Operator.ALL.value, Operator.EQA.value, Operator.NIN.value):
        return DB_OPERATOR_PREFIX + Operator.IN.value
    if canonical == Operator.EQA.value or family is not None:
        return DB_OPERATOR_PREFIX + Operator.EQ.value
    return DB_OPERATOR_PREFIX + canonical


def _build_traits() -> dict[Operator, OperatorTraits]:
    table: dict[Operator, OperatorTraits] = {}
    for op in Operator:
        canonical = _canonical_text(op.value)
        family, ignore_case = _pattern_family(canonical)
        multi_value = canonical in (Operator.ALL.value, Operator.EQA.value) or canonical.endswith(IN_SUFFIX)
        table[op] = OperatorTraits(
            canonical=Operator(canonical),
            family=family,
            ignore_case=ignore_case,
            multi_value=multi_value,
            needs_split=multi_value and not op.value.endswith(ARRAY_SUFFIX),
            single_value=Operator(_single_value_text(canonical)),
            db_operator=_db_operator(canonical, family, multi_value),
        )
    return table


_TRAITS = _build_traits()
_OPERATOR_VALUES = frozenset(op.value for op in Operator)
