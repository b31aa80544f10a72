import unittest
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from urlquery.core.config import Settings
from urlquery.core.errors import (
    InvalidDirectiveError,
    MissingFieldError,
    NoConverterError,
    NoFieldSpecError,
    NoMatchError,
    NoSortFieldError,
    QueryParseError,
    UnknownOperatorError,
)
from urlquery.schemas.query import FieldSpec, ParsedField
from urlquery.services.convert import default_converter, to_bool, to_int, to_str
from urlquery.services.operators import Operator
from urlquery.services.parser import Parser

from tests.fakes import FakeObjectId, FakePrimitives, FakeRegex


def _kinds(errors):
    return [type(err) for err in errors]


class ParserRegexEscapeTests(unittest.TestCase):
    def test_escaped(self):
        parser = Parser()
        self.assertEqual(
            parser.regex_escape("^([0-9]?.*){1,2}|n/a+$"),
            "\\^\\(\\[0\\-9\\]\\?\\.\\*\\)\\{1,2\\}\\|n/a\\+\\$",
        )
        self.assertEqual(parser.regex_escape("0xabcdef"), "0xabcdef")

    def test_table_is_built_once_across_threads(self):
        parser = Parser()
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(parser.regex_escape, ["a.b"] * 64))
        self.assertEqual(set(results), {"a\\.b"})
        table = parser._escape_table
        parser.regex_escape("x|y")
        self.assertIs(parser._escape_table, table)

    def test_sort_without_primitives_is_an_error(self):
        with self.assertRaises(QueryParseError) as ctx:
            Parser().parse({"__sort": ["x"]})
        self.assertTrue(ctx.exception.has(NoSortFieldError))
        self.assertEqual(ctx.exception.query.sort, [])


class ParserConvertTests(unittest.TestCase):
    def setUp(self):
        fields = {
            "field1": FieldSpec(required=True),
            "field2": FieldSpec(converter=to_int),
            "field3": FieldSpec(required=True, converter=to_bool),
            "field4": FieldSpec(converter=int),
        }
        self.parser = Parser(default_converter(FakePrimitives()), fields)
        self.strict = Parser(default_converter(FakePrimitives()), fields, validate_fields=True)

    def test_validate_fields_rejects_unknown_field(self):
        with self.assertRaises(NoFieldSpecError) as ctx:
            self.strict.convert(ParsedField("unknown", Operator.EQ, ["1"]))
        self.assertEqual(ctx.exception.field, "unknown")
        self.assertEqual(str(ctx.exception), "no field spec: unknown[eq]")

    def test_field_converter_failure(self):
        with self.assertRaises(NoMatchError) as ctx:
            self.strict.convert(ParsedField("field3", Operator.EQ, ["1"]))
        self.assertEqual(ctx.exception.field, "field3")

    def test_plain_callable_failure_is_no_match(self):
        self.assertEqual(self.parser.convert(ParsedField("field4", Operator.EQ, ["7"])), 7)
        with self.assertRaises(NoMatchError):
            self.parser.convert(ParsedField("field4", Operator.EQ, ["seven"]))

    def test_any_converter_failure_is_no_match(self):
        codes = {"a": 1}
        parser = Parser(default_converter(FakePrimitives()), {"code": FieldSpec(converter=lambda val: codes[val])})
        self.assertEqual(parser.convert(ParsedField("code", Operator.EQ, ["a"])), 1)
        with self.assertRaises(NoMatchError) as ctx:
            parser.convert(ParsedField("code", Operator.EQ, ["b"]))
        self.assertIsInstance(ctx.exception.__cause__, KeyError)

        query, errors = parser.compile({"code": ["b"], "other": ["1"]})
        self.assertEqual(_kinds(errors), [NoMatchError])
        self.assertEqual(query.filter.to_dict(), {"other": 1})

    def test_field_without_converter_uses_default_chain(self):
        self.assertEqual(self.parser.convert(ParsedField("field1", Operator.EQ, ["12"])), 12)

    def test_exists_is_always_boolean(self):
        self.assertIs(self.parser.convert(ParsedField("test", Operator.EXISTS, ["yes"])), True)
        self.assertIs(self.parser.convert(ParsedField("field2", Operator.EXISTS, ["false"])), False)
        with self.assertRaises(NoMatchError):
            self.parser.convert(ParsedField("test", Operator.EXISTS, ["1"]))
        with self.assertRaises(NoMatchError):
            self.parser.convert(ParsedField("field2", Operator.EXISTS, ["1"]))

    def test_regex_operator(self):
        self.assertEqual(
            self.parser.convert(ParsedField("test", Operator.REIN, ["[0-9]*", "[a-f]*"])),
            [FakeRegex("[0-9]*"), FakeRegex("[a-f]*")],
        )

    def test_regex_bypasses_field_converter(self):
        self.assertEqual(
            self.parser.convert(ParsedField("field2", Operator.IRE, ["^a"])),
            FakeRegex("^a", "i"),
        )

    def test_starts_with_operator(self):
        self.assertEqual(
            self.parser.convert(ParsedField("test", Operator.ISW, ["^"])),
            FakeRegex("^\\^", "i"),
        )

    def test_contains_operator(self):
        self.assertEqual(
            self.parser.convert(ParsedField("test", Operator.ICOIN, ["$,x"])),
            [FakeRegex("\\$,x", "i")],
        )

    def test_pattern_operator_without_primitives(self):
        parser = Parser(default_converter(None))
        with self.assertRaises(NoConverterError):
            parser.convert(ParsedField("test", Operator.CO, ["x"]))

    def test_no_converter_at_all(self):
        with self.assertRaises(NoConverterError):
            Parser().convert(ParsedField("test", Operator.EQ, ["x"]))


class ParserFilterTests(unittest.TestCase):
    def setUp(self):
        self.parser = Parser(
            default_converter(FakePrimitives()),
            {"required": FieldSpec(required=True, converter=to_bool)},
            validate_fields=True,
        )

    def test_directives_are_not_filters(self):
        query, errors = self.parser.compile(
            {
                "required": ["yes"],
                "__limit": ["25"],
                "__skip": ["75"],
                "__sort": ["x,y,z"],
            }
        )
        self.assertEqual(query.filter.to_dict(), {"required": True})
        self.assertEqual(query.limit, 25)
        self.assertEqual(query.skip, 75)
        # x, y and z have no field spec
        self.assertEqual(_kinds(errors), [NoSortFieldError] * 3)
        self.assertEqual(query.sort, [])

    def test_missing_required_field(self):
        query, errors = self.parser.compile({"__limit": ["25"]})
        self.assertEqual(_kinds(errors), [MissingFieldError])
        self.assertEqual(errors[0].field, "required")
        self.assertEqual(query.filter.to_dict(), {})
        self.assertEqual(query.limit, 25)

    def test_unconvertible_required_field(self):
        query, errors = self.parser.compile({"required": ["test"]})
        self.assertIn(NoMatchError, _kinds(errors))
        self.assertIn(MissingFieldError, _kinds(errors))
        self.assertEqual(query.filter.to_dict(), {})


class ParserParseTests(unittest.TestCase):
    def setUp(self):
        converter = default_converter(FakePrimitives(forbidden_sort_fields={"forbidden"}))
        self.parser = Parser(
            converter,
            {
                "required": FieldSpec(required=True, converter=to_bool),
                "forbidden": FieldSpec(converter=converter),
            },
            validate_fields=True,
        )

    def test_bad_skip_parameter(self):
        with self.assertRaises(QueryParseError) as ctx:
            self.parser.parse({"required": ["yes"], "__skip": ["required"], "__limit": ["10"]})
        exc = ctx.exception
        self.assertTrue(exc.has(InvalidDirectiveError))
        self.assertEqual(exc.query.filter.to_dict(), {"required": True})
        self.assertEqual(exc.query.skip, 0)
        self.assertEqual(exc.query.limit, 10)

    def test_bad_limit_parameter(self):
        with self.assertRaises(QueryParseError) as ctx:
            self.parser.parse({"required": ["no"], "__limit": ["ten"], "__skip": ["1000"]})
        query = ctx.exception.query
        self.assertEqual(query.filter.to_dict(), {"required": False})
        self.assertEqual(query.limit, 0)
        self.assertEqual(query.skip, 1000)
        self.assertEqual(query.sort, [])

    def test_sort_without_spec(self):
        with self.assertRaises(QueryParseError) as ctx:
            self.parser.parse({"required": ["no"], "__sort": ["field"]})
        self.assertTrue(ctx.exception.has(NoSortFieldError))
        self.assertEqual(ctx.exception.query.filter.to_dict(), {"required": False})
        self.assertEqual(ctx.exception.query.sort, [])

    def test_sort_factory_rejects_field(self):
        with self.assertRaises(QueryParseError) as ctx:
            self.parser.parse({"required": ["no"], "__sort": ["-forbidden"]})
        self.assertTrue(ctx.exception.has(NoSortFieldError))

    def test_sort_errors_do_not_stop_later_tokens(self):
        with self.assertRaises(QueryParseError) as ctx:
            self.parser.parse({"required": ["no"], "__sort": ["-forbidden,required"]})
        self.assertEqual(ctx.exception.query.sort, [{"required": 1}])

    def test_bad_field_conversion(self):
        with self.assertRaises(QueryParseError) as ctx:
            self.parser.parse({"required": ["nope"]})
        exc = ctx.exception
        self.assertTrue(exc.has(NoMatchError))
        self.assertEqual(exc.query.filter.to_dict(), {})
        self.assertEqual(exc.query.limit, 0)
        self.assertEqual(exc.query.skip, 0)
        self.assertEqual(exc.query.sort, [])

    def test_normal_request(self):
        query = self.parser.parse({"__sort": ["-required"], "required__exists": ["true"]})
        self.assertEqual(query.skip, 0)
        self.assertEqual(query.limit, 0)
        self.assertEqual(query.sort, [{"required": -1}])
        self.assertEqual(query.filter.to_dict(), {"required": {"$exists": True}})

    def test_all_errors_are_reported_together(self):
        parser = Parser(default_converter(FakePrimitives()))
        query, errors = parser.compile({"a__foo": ["1"], "b": ["2"], "__limit": ["x"], "__sort": ["-"]})
        self.assertEqual(_kinds(errors), [UnknownOperatorError, InvalidDirectiveError, NoSortFieldError])
        self.assertEqual(query.filter.to_dict(), {"b": 2})

        with self.assertRaises(QueryParseError) as ctx:
            parser.parse({"a__foo": ["1"], "__limit": ["x"]})
        detail = ctx.exception.to_detail()
        self.assertEqual([err["kind"] for err in detail["errors"]], ["unknown_operator", "invalid_directive"])
        self.assertIn("unknown operator: a[foo]", str(ctx.exception))


class ParserMultiValueTests(unittest.TestCase):
    def setUp(self):
        self.parser = Parser(default_converter(FakePrimitives()))

    def _filter(self, params):
        return self.parser.parse(params).filter.to_dict()

    def test_in_with_single_value_is_equality(self):
        self.assertEqual(self._filter({"field__in": ["a"]}), {"field": "a"})

    def test_in_splits_commas(self):
        self.assertEqual(self._filter({"field__in": ["a,b"]}), {"field": {"$in": ["a", "b"]}})

    def test_bracket_is_in(self):
        self.assertEqual(self._filter({"field[]": ["a", "b"]}), {"field": {"$in": ["a", "b"]}})

    def test_bracket_does_not_split_commas(self):
        self.assertEqual(self._filter({"field[]": ["a,b"]}), {"field": "a,b"})

    def test_rein_and_bracket_re_merge(self):
        document = self._filter({"field__rein": ["a"], "field__re[]": ["b"]})
        self.assertEqual(list(document), ["field"])
        self.assertEqual(list(document["field"]), ["$in"])
        self.assertCountEqual(document["field"]["$in"], [FakeRegex("a"), FakeRegex("b")])

    def test_conversion_precedence(self):
        document = self._filter(
            {"n": ["123"], "d": ["2021-01-01"], "b": ["yes"], "oid": ["1234567890ab"], "s": ["abc"]}
        )
        self.assertEqual(
            document,
            {
                "n": 123,
                "d": datetime(2021, 1, 1, tzinfo=timezone.utc),
                "b": True,
                "oid": FakeObjectId("1234567890ab"),
                "s": "abc",
            },
        )

    def test_range_on_one_field(self):
        self.assertEqual(
            self._filter({"age__gte": ["18"], "age__lt": ["65"]}),
            {"age": {"$gte": 18, "$lt": 65}},
        )

    def test_equality_folds_into_operators(self):
        self.assertEqual(self._filter({"age": ["5"], "age__gt": ["1"]}), {"age": {"$eq": 5, "$gt": 1}})

    def test_contains_is_escaped(self):
        self.assertEqual(self._filter({"name__ico": ["J.R"]}), {"name": {"$eq": FakeRegex("J\\.R", "i")}})

    def test_equality_does_not_depend_on_parameter_order(self):
        cases = [
            ([("name", "y"), ("name__co", "x")], ["y", FakeRegex("x")]),
            ([("f", "z"), ("f__eqa", "a,b")], ["z", "a", "b"]),
        ]
        for pairs, expected in cases:
            forward = self._filter(pairs)
            backward = self._filter(list(reversed(pairs)))
            field = pairs[0][0]
            self.assertEqual(list(forward[field]), ["$eq"])
            self.assertEqual(list(backward[field]), ["$eq"])
            self.assertCountEqual(forward[field]["$eq"], expected)
            self.assertCountEqual(backward[field]["$eq"], expected)

    def test_nested_fields(self):
        parser = Parser(default_converter(FakePrimitives()), {"a.b": FieldSpec()}, validate_fields=True)
        self.assertEqual(parser.parse({"a[b]__gt": ["1"]}).filter.to_dict(), {"a.b": {"$gt": 1}})

    def test_field_converter_override(self):
        parser = Parser(default_converter(FakePrimitives()), {"code": FieldSpec(converter=to_str)})
        self.assertEqual(parser.parse({"code": ["123"]}).filter.to_dict(), {"code": "123"})

    def test_without_string_fallback(self):
        parser = Parser(default_converter(FakePrimitives(), allow_string=False))
        _, errors = parser.compile({"name": ["abc"]})
        self.assertEqual(_kinds(errors), [NoMatchError])

    def test_sort_order(self):
        query = self.parser.parse({"__sort": ["a,b", "c"]})
        self.assertEqual(query.sort, [{"a": 1}, {"b": 1}, {"c": 1}])
        query = self.parser.parse({"__sort": ["-age,+name"]})
        self.assertEqual(query.sort, [{"age": -1}, {"name": 1}])

    def test_accepts_iterators_of_pairs(self):
        query = self.parser.parse(iter([("a", "1"), ("__limit", "5"), ("__sort", "a")]))
        self.assertEqual(query.filter.to_dict(), {"a": 1})
        self.assertEqual(query.limit, 5)
        self.assertEqual(query.sort, [{"a": 1}])

    def test_find_kwargs(self):
        query = self.parser.parse({"a": ["x"], "__limit": ["2"], "__skip": ["4"], "__sort": ["-a"]})
        self.assertEqual(
            query.to_find_kwargs(),
            {"filter": {"a": "x"}, "sort": [{"a": -1}], "limit": 2, "skip": 4},
        )


class ParserFromSettingsTests(unittest.TestCase):
    def test_settings_drive_parser(self):
        config = Settings(QUERY_VALIDATE_FIELDS=True, QUERY_STRING_FALLBACK=False)
        parser = Parser.from_settings(FakePrimitives(), {"n": FieldSpec()}, config=config)
        self.assertTrue(parser.validate_fields)
        _, errors = parser.compile({"x": ["1"], "n": ["abc"]})
        self.assertEqual(_kinds(errors), [NoFieldSpecError, NoMatchError])
