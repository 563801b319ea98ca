"""
Tokenizer and recursive-descent parser for Mongo shell literals.

Accepts strict JSON plus the shell extras people actually type:
unquoted keys, single-quoted strings, /regex/flags, trailing commas,
comments and a handful of constructors (ObjectId, ISODate, NumberLong...).
Nothing is ever evaluated; unknown identifiers are syntax errors.
"""
import json
import math
import re
from collections import namedtuple
from datetime import datetime, timezone

from bson import ObjectId
from bson.decimal128 import Decimal128
from bson.errors import InvalidId
from bson.int64 import Int64
from bson.regex import Regex

Token = namedtuple("Token", "kind value pos")

PUNCT = "{}[](),:"
DIGITS = "0123456789"
INT64_MIN, INT64_MAX = -(2 ** 63), 2 ** 63 - 1
REGEX_FLAGS = set("imsxu")
_FLAG_BITS = (("i", re.IGNORECASE), ("m", re.MULTILINE), ("s", re.DOTALL),
              ("x", re.VERBOSE), ("u", re.UNICODE))

_IDENT_RE = re.compile(r"[A-Za-z_$][\w$]*")
_NUMBER_RE = re.compile(
    r"0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?"
)
_SIMPLE_ESCAPES = {
    "n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v",
    "0": "\0", "\\": "\\", "'": "'", '"': '"', "/": "/",
}

KEYWORDS = {"true": True, "false": False, "null": None, "undefined": None,
            "Infinity": math.inf, "NaN": math.nan}


class LiteralSyntaxError(ValueError):
    def __init__(self, message: str, pos: int = None):
        self.pos = pos
        if pos is not None:
            message = f"{message} at position {pos}"
        super().__init__(message)


def _surrogate_pair(text: str, high: int, i: int):
    """Combine a \\uD8xx\\uDCxx escape pair into one code point."""
    low_digits = text[i + 2:i + 6] if text.startswith("\\u", i) else ""
    if 0xD800 <= high <= 0xDBFF and len(low_digits) == 4:
        try:
            low = int(low_digits, 16)
        except ValueError:
            low = None
        if low is not None and 0xDC00 <= low <= 0xDFFF:
            return 0x10000 + ((high - 0xD800) << 10) + (low - 0xDC00), i + 6
    raise LiteralSyntaxError(f"Unpaired surrogate \\u{high:04X}", i - 6)


def _check_int64(value, pos):
    if isinstance(value, int) and not (INT64_MIN <= value <= INT64_MAX):
        raise LiteralSyntaxError(f"Integer {value} does not fit in 64 bits", pos)
    return value


def _read_string(text: str, i: int):
    """Read a quoted string starting at text[i]; return (value, next_index)."""
    quote = text[i]
    start = i
    i += 1
    out = []
    while i < len(text):
        ch = text[i]
        if ch == quote:
            return "".join(out), i + 1
        if ch == "\n":
            raise LiteralSyntaxError("Unterminated string", start)
        if ch != "\\":
            out.append(ch)
            i += 1
            continue
        i += 1
        if i >= len(text):
            break
        esc = text[i]
        if esc in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[esc])
            i += 1
        elif esc == "\n":
            i += 1  # line continuation
        elif esc in ("u", "x"):
            width = 4 if esc == "u" else 2
            digits = text[i + 1:i + 1 + width]
            if len(digits) != width or not all(c in "0123456789abcdefABCDEF" for c in digits):
                raise LiteralSyntaxError(f"Invalid \\{esc} escape", i - 1)
            code = int(digits, 16)
            i += 1 + width
            if esc == "u" and 0xD800 <= code <= 0xDFFF:
                code, i = _surrogate_pair(text, code, i)
            out.append(chr(code))
        else:
            out.append(esc)
            i += 1
    raise LiteralSyntaxError("Unterminated string", start)


def _read_regex(text: str, i: int):
    """Read /pattern/flags starting at text[i]; return (Regex, next_index)."""
    start = i
    i += 1
    in_class = False
    while i < len(text):
        ch = text[i]
        if ch == "\n":
            break
        if ch == "\\":
            i += 2
            continue
        if ch == "[":
            in_class = True
        elif ch == "]":
            in_class = False
        elif ch == "/" and not in_class:
            pattern = text[start + 1:i]
            i += 1
            flags_start = i
            while i < len(text) and (text[i].isalnum() or text[i] == "_"):
                i += 1
            flags = text[flags_start:i]
            bad = set(flags) - REGEX_FLAGS
            if bad:
                raise LiteralSyntaxError(
                    f"Unsupported regex flag(s) {''.join(sorted(bad))!r}", flags_start)
            return Regex(pattern, flags), i
        i += 1
    raise LiteralSyntaxError("Unterminated regular expression", start)


def iter_tokens(text: str):
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end + 1
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end == -1:
                raise LiteralSyntaxError("Unterminated comment", i)
            i = end + 2
        elif ch in PUNCT:
            yield Token("punct", ch, i)
            i += 1
        elif ch in "+-":
            yield Token("sign", ch, i)
            i += 1
        elif ch in ("'", '"'):
            value, end = _read_string(text, i)
            yield Token("string", value, i)
            i = end
        elif ch == "/":
            value, end = _read_regex(text, i)
            yield Token("regex", value, i)
            i = end
        elif ch in DIGITS or (ch == "." and i + 1 < n and text[i + 1] in DIGITS):
            m = _NUMBER_RE.match(text, i)
            raw = m.group(0)
            if raw[:2] in ("0x", "0X"):
                value = int(raw, 16)
            elif any(c in raw for c in ".eE"):
                value = float(raw)
            else:
                value = int(raw)
            yield Token("number", value, i)
            i = m.end()
        else:
            m = _IDENT_RE.match(text, i)
            if not m:
                raise LiteralSyntaxError(f"Unexpected character {ch!r}", i)
            yield Token("ident", m.group(0), i)
            i = m.end()
    yield Token("eof", None, n)


def tokenize(text: str) -> list:
    return list(iter_tokens(text))


def _parse_date(value, pos):
    if value is None:
        return datetime.now(timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise LiteralSyntaxError(f"Invalid date {value!r}", pos)
    if not isinstance(value, str):
        raise LiteralSyntaxError("Date expects a string or milliseconds", pos)
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise LiteralSyntaxError(f"Invalid date {value!r}", pos)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _object_id(value, pos):
    if value is None:
        return ObjectId()
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise LiteralSyntaxError(f"Invalid ObjectId {value!r}", pos)


def _number_int(value, pos):
    try:
        return _check_int64(int(value), pos)
    except (TypeError, OverflowError, ValueError):
        raise LiteralSyntaxError(f"Invalid integer {value!r}", pos)


def _number_decimal(value, pos):
    try:
        return Decimal128(str(value))
    except (ArithmeticError, TypeError, ValueError):
        raise LiteralSyntaxError(f"Invalid decimal {value!r}", pos)


CONSTRUCTORS = {
    "ObjectId": _object_id,
    "ISODate": _parse_date,
    "Date": _parse_date,
    "NumberInt": _number_int,
    "NumberLong": lambda value, pos: Int64(_number_int(value, pos)),
    "NumberDecimal": _number_decimal,
}


class _Parser:
    def __init__(self, text: str):
        self.tokens = tokenize(text)
        self.index = 0

    def peek(self) -> Token:
        return self.tokens[self.index]

    def next(self) -> Token:
        tok = self.tokens[self.index]
        self.index += 1
        return tok

    def at(self, kind: str, value=None) -> bool:
        tok = self.peek()
        return tok.kind == kind and (value is None or tok.value == value)

    def expect(self, value: str) -> Token:
        tok = self.next()
        if tok.kind != "punct" or tok.value != value:
            raise LiteralSyntaxError(f"Expected {value!r}, found {_describe(tok)}", tok.pos)
        return tok

    def parse_value(self):
        tok = self.peek()
        if tok.kind == "punct" and tok.value == "{":
            return self.parse_object()
        if tok.kind == "punct" and tok.value == "[":
            return self.parse_array()
        if tok.kind in ("string", "regex", "number"):
            self.next()
            return _check_int64(tok.value, tok.pos)
        if tok.kind == "sign":
            return self.parse_signed()
        if tok.kind == "ident":
            return self.parse_ident()
        raise LiteralSyntaxError(f"Unexpected {_describe(tok)}", tok.pos)

    def parse_signed(self):
        sign = self.next()
        tok = self.next()
        if tok.kind == "number":
            value = tok.value
        elif tok.kind == "ident" and tok.value in ("Infinity", "NaN"):
            value = KEYWORDS[tok.value]
        else:
            raise LiteralSyntaxError(f"Expected a number after {sign.value!r}", tok.pos)
        return _check_int64(-value if sign.value == "-" else value, sign.pos)

    def parse_ident(self):
        tok = self.next()
        name = tok.value
        if name == "new":
            ctor = self.next()
            if ctor.kind != "ident" or ctor.value not in CONSTRUCTORS:
                raise LiteralSyntaxError(f"Unsupported constructor {_describe(ctor)}", ctor.pos)
            return self.parse_call(ctor)
        if name in CONSTRUCTORS and self.at("punct", "("):
            return self.parse_call(tok)
        if name in KEYWORDS:
            return KEYWORDS[name]
        raise LiteralSyntaxError(f"Unknown identifier {name!r}", tok.pos)

    def parse_call(self, ctor: Token):
        self.expect("(")
        args = self.parse_sequence(")")
        if len(args) > 1:
            raise LiteralSyntaxError(f"{ctor.value} takes at most one argument", ctor.pos)
        return CONSTRUCTORS[ctor.value](args[0] if args else None, ctor.pos)

    def parse_sequence(self, closer: str) -> list:
        """Comma separated values up to and including `closer`."""
        items = []
        while not self.at("punct", closer):
            items.append(self.parse_value())
            if not self.at("punct", ","):
                break
            self.next()
        self.expect(closer)
        return items

    def parse_array(self) -> list:
        self.expect("[")
        return self.parse_sequence("]")

    def parse_object(self) -> dict:
        self.expect("{")
        obj = {}
        while not self.at("punct", "}"):
            key_tok = self.next()
            if key_tok.kind in ("ident", "string"):
                key = key_tok.value
            elif key_tok.kind == "number":
                key = _format_number(key_tok.value)
            else:
                raise LiteralSyntaxError(f"Expected object key, found {_describe(key_tok)}", key_tok.pos)
            self.expect(":")
            obj[key] = self.parse_value()
            if not self.at("punct", ","):
                break
            self.next()
        self.expect("}")
        return obj

    def finish(self):
        tok = self.peek()
        if tok.kind != "eof":
            raise LiteralSyntaxError(f"Unexpected {_describe(tok)}", tok.pos)


def _describe(tok: Token) -> str:
    if tok.kind == "eof":
        return "end of input"
    if tok.kind == "regex":
        return "regular expression"
    return f"{tok.kind} {tok.value!r}"


def parse_literal(text: str):
    """Parse exactly one literal value."""
    parser = _Parser(text)
    if parser.at("eof"):
        raise LiteralSyntaxError("Empty literal", 0)
    value = parser.parse_value()
    parser.finish()
    return value


def parse_arguments(text: str) -> list:
    """Parse a comma separated argument list, as found between call parens."""
    parser = _Parser(text)
    items = []
    while not parser.at("eof"):
        items.append(parser.parse_value())
        if not parser.at("punct", ","):
            break
        parser.next()
    parser.finish()
    return items


def find_closing_paren(text: str, open_index: int) -> int:
    """Index of the ')' matching the '(' at open_index, or -1.

    Brackets and braces must nest properly; quotes and regex literals
    are skipped as whole tokens. Text after the match is never tokenized.
    """
    pairs = {")": "(", "]": "[", "}": "{"}
    stack = []
    try:
        for tok in iter_tokens(text[open_index:]):
            if tok.kind != "punct":
                continue
            if tok.value in "([{":
                stack.append(tok.value)
            elif tok.value in pairs:
                if not stack or stack.pop() != pairs[tok.value]:
                    return -1
                if not stack:
                    return open_index + tok.pos
    except LiteralSyntaxError:
        return -1
    return -1


def _format_number(value) -> str:
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer() and abs(value) < 1e16:
            return str(int(value))
        return repr(value)
    return str(value)


def _regex_flags(value: Regex) -> str:
    # bson.Regex keeps flags as an int of re.* bits
    if isinstance(value.flags, str):
        return value.flags
    return "".join(flag for flag, bit in _FLAG_BITS if value.flags & bit)


def _escape_slashes(pattern: str) -> str:
    """Escape '/' for a regex literal, leaving escapes and [...] classes alone."""
    out = []
    in_class = False
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\":
            out.append(pattern[i:i + 2])
            i += 2
            continue
        if ch == "[":
            in_class = True
        elif ch == "]":
            in_class = False
        elif ch == "/" and not in_class:
            out.append("\\")
        out.append(ch)
        i += 1
    return "".join(out)


def _format_key(key: str) -> str:
    if _IDENT_RE.fullmatch(key) and key not in KEYWORDS and key != "new":
        return key
    return json.dumps(key, ensure_ascii=False)


def to_literal(value) -> str:
    """Serialize a parsed value back to shell literal syntax."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Int64):
        return f"NumberLong({int(value)})"
    if isinstance(value, (int, float)):
        return _format_number(value)
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, Regex):
        return "/" + _escape_slashes(value.pattern) + "/" + _regex_flags(value)
    if isinstance(value, ObjectId):
        return f'ObjectId("{value}")'
    if isinstance(value, datetime):
        stamp = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
        return f'ISODate("{stamp.replace("+00:00", "Z")}")'
    if isinstance(value, Decimal128):
        return f'NumberDecimal("{value}")'
    if isinstance(value, dict):
        body = ", ".join(f"{_format_key(k)}: {to_literal(v)}" for k, v in value.items())
        return "{" + body + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(to_literal(v) for v in value) + "]"
    raise TypeError(f"Cannot serialize {type(value).__name__} as a shell literal")
