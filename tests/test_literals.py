import math
import re
from datetime import datetime, timezone

import pytest
from bson import ObjectId
from bson.decimal128 import Decimal128
from bson.int64 import Int64
from bson.regex import Regex

from querylab.literals import (
    LiteralSyntaxError,
    find_closing_paren,
    parse_arguments,
    parse_literal,
    to_literal,
)


def test_strict_json():
    assert parse_literal('{"a": [1, 2.5, "x", true, false, null]}') == {
        "a": [1, 2.5, "x", True, False, None]
    }


def test_shell_object_syntax():
    value = parse_literal("{year: 1999, 'title': 'The Matrix', $or: [{a: -1}, {b: +2}]}")
    assert value == {"year": 1999, "title": "The Matrix", "$or": [{"a": -1}, {"b": 2}]}


def test_trailing_commas_and_comments():
    text = """
    {
        // line comment
        year: 2000, /* block */
        tags: ['a', 'b',],
    }
    """
    assert parse_literal(text) == {"year": 2000, "tags": ["a", "b"]}


@pytest.mark.parametrize("text,expected", [
    ("0x1F", 31),
    (".5", 0.5),
    ("1e3", 1000.0),
    ("-7", -7),
    ("3", 3),
])
def test_numbers(text, expected):
    value = parse_literal(text)
    assert value == expected
    assert type(value) is type(expected)


def test_infinity_and_nan():
    assert parse_literal("-Infinity") == -math.inf
    assert math.isnan(parse_literal("NaN"))


def test_string_escapes():
    assert parse_literal(r"'it\'s é\n'") == "it's é\n"
    assert parse_literal(r'"tab\there"') == "tab\there"


def test_regex_literal():
    value = parse_literal("{title: /^the (matrix|ring)/i}")["title"]
    assert isinstance(value, Regex)
    assert value.pattern == "^the (matrix|ring)"
    assert value.flags == re.IGNORECASE


def test_regex_with_slash_in_class_and_escape():
    assert parse_literal(r"/[/]a\/b/").pattern == r"[/]a\/b"


def test_shell_constructors():
    value = parse_literal(
        "{_id: ObjectId('507f1f77bcf86cd799439011'), at: ISODate('2020-01-01T00:00:00Z'),"
        " d: new Date('2021-06-01'), n: NumberLong(5), i: NumberInt('7'), p: NumberDecimal('1.10')}"
    )
    assert value["_id"] == ObjectId("507f1f77bcf86cd799439011")
    assert value["at"] == datetime(2020, 1, 1, tzinfo=timezone.utc)
    assert value["d"] == datetime(2021, 6, 1, tzinfo=timezone.utc)
    assert isinstance(value["n"], Int64) and value["n"] == 5
    assert value["i"] == 7
    assert value["p"] == Decimal128("1.10")


@pytest.mark.parametrize("text", [
    "{a: foo}",
    "{a: 1",
    "[1, 2",
    "'abc",
    "/abc/g",
    "{a: 1} {b: 2}",
    "process.exit(1)",
    "this.constructor",
    "new Function('return 1')",
    "ObjectId('nothex')",
    "require('fs')",
    "",
])
def test_invalid_literals(text):
    with pytest.raises(LiteralSyntaxError):
        parse_literal(text)


def test_error_reports_position():
    with pytest.raises(LiteralSyntaxError) as excinfo:
        parse_literal("{a: 1, b: oops}")
    assert excinfo.value.pos == 10
    assert "oops" in str(excinfo.value)


def test_parse_arguments():
    assert parse_arguments("") == []
    assert parse_arguments("{a: 1}, {b: 0}") == [{"a": 1}, {"b": 0}]
    assert parse_arguments("{a: [1, 2, {b: 3}]}") == [{"a": [1, 2, {"b": 3}]}]


def test_find_closing_paren_skips_strings_and_regex():
    text = "find({title: ')', re: /\\)/})"
    assert find_closing_paren(text, 4) == len(text) - 1


def test_find_closing_paren_nested():
    text = "find({a: [1, (2), {b: 3}]}).limit(3)"
    assert find_closing_paren(text, 4) == text.index(").limit")


@pytest.mark.parametrize("text", ["find({a: 1)", "find({a: 1}", "find('x)"])
def test_find_closing_paren_unbalanced(text):
    assert find_closing_paren(text, 4) == -1


def test_to_literal_formats_shell_syntax():
    assert to_literal({"a": 1, "imdb.rating": {"$gte": 7.5}}) == '{a: 1, "imdb.rating": {$gte: 7.5}}'
    assert to_literal([True, None, "x"]) == '[true, null, "x"]'
    assert to_literal(Regex("^a/b", "im")) == r"/^a\/b/im"
    assert to_literal(ObjectId("507f1f77bcf86cd799439011")) == 'ObjectId("507f1f77bcf86cd799439011")'


def test_to_literal_round_trip():
    value = parse_literal(
        "{title: /^Matrix/i, _id: ObjectId('507f1f77bcf86cd799439011'),"
        " 'imdb.rating': {$gte: 7.5}, tags: ['a', \"b\"], n: null, ok: true,"
        " at: ISODate('2020-01-01T10:00:00.250Z'), big: NumberLong(9007199254740993)}"
    )
    assert parse_literal(to_literal(value)) == value


def test_to_literal_rejects_unknown_types():
    with pytest.raises(TypeError):
        to_literal(object())


def test_surrogate_pair_escape_is_one_code_point():
    assert parse_literal(r'"\ud83d\ude00"') == "\U0001F600"
    assert parse_literal(r"'Star \ud83d\ude00!'") == "Star \U0001F600!"


@pytest.mark.parametrize("text", [r'"\ud83d"', r'"\ud83dx"', r'"\ude00"', r'"\ud83dA"'])
def test_unpaired_surrogate_escape(text):
    with pytest.raises(LiteralSyntaxError) as excinfo:
        parse_literal(text)
    assert "surrogate" in str(excinfo.value)


def test_to_literal_keeps_non_ascii_text():
    value = {"title": "Star \U0001F600", "prix café": "naïve"}
    text = to_literal(value)
    assert text == '{title: "Star \U0001F600", "prix café": "naïve"}'
    assert parse_literal(text) == value


def test_to_literal_leaves_slash_in_character_class():
    assert to_literal(Regex("[/]")) == "/[/]/"
    assert to_literal(Regex(r"a\/b[^/]c/d")) == r"/a\/b[^/]c\/d/"
    assert parse_literal(to_literal(parse_literal("/[/]x/i"))) == Regex("[/]x", "i")


@pytest.mark.parametrize("text", [
    "9223372036854775808",
    "-9223372036854775809",
    "[1, 99999999999999999999]",
    "NumberLong('9223372036854775808')",
    "NumberInt(-9223372036854775809)",
])
def test_integers_wider_than_int64(text):
    with pytest.raises(LiteralSyntaxError):
        parse_literal(text)


def test_int64_bounds_are_accepted():
    assert parse_literal("9223372036854775807") == 2 ** 63 - 1
    assert parse_literal("-9223372036854775808") == -(2 ** 63)
