import json
import re
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from .literals import LiteralSyntaxError, find_closing_paren, parse_arguments, parse_literal

SEARCH_RESULT_CAP = 20
ENVELOPE_COLLECTION = "books"
ALLOWED_METHODS = ("find", "aggregate")
CHAIN_METHODS = ("limit", "skip", "sort", "project")

_DB_PREFIX_RE = re.compile(r"^db\.(\w+)\.(.*)$", re.DOTALL)
_METHOD_NAME_RE = re.compile(r"\s*(\w+)\s*\(")


@dataclass(frozen=True)
class Pipeline:
    stages: Tuple[dict, ...]
    collection: Optional[str] = None


@dataclass(frozen=True)
class FindSpec:
    filter: dict
    projection: Optional[dict] = None
    limit: Optional[int] = None
    skip: Optional[int] = None
    sort: Optional[dict] = None
    collection: Optional[str] = None


@dataclass(frozen=True)
class ParseError:
    reason: str


ParsedCommand = Union[Pipeline, FindSpec, ParseError]


class CommandSyntaxError(ValueError):
    """Raised internally; surfaced to callers as a ParseError."""


def clean_query(text: str) -> str:
    """Strip whitespace and a single trailing semicolon."""
    text = text.strip()
    if text.endswith(";"):
        text = text[:-1].rstrip()
    return text


def _literal(text: str):
    try:
        return parse_literal(text)
    except LiteralSyntaxError as e:
        raise CommandSyntaxError(str(e))


def _arguments(text: str) -> list:
    try:
        return parse_arguments(text)
    except LiteralSyntaxError as e:
        raise CommandSyntaxError(str(e))


def _pipeline(value, collection=None) -> Pipeline:
    if not isinstance(value, list):
        raise CommandSyntaxError("aggregate requires an array pipeline")
    for i, stage in enumerate(value):
        if not isinstance(stage, dict):
            raise CommandSyntaxError(f"Pipeline stage {i} is not an object")
        if len(stage) != 1:
            raise CommandSyntaxError(
                f"Pipeline stage {i} must have exactly one operator, got {len(stage)}")
    return Pipeline(stages=tuple(value), collection=collection)


def split_method_call(method_call: str):
    """Split 'name(args)rest' into (name, args, rest) using balanced parens."""
    m = _METHOD_NAME_RE.match(method_call)
    if not m:
        raise CommandSyntaxError("Invalid method call format")
    open_index = m.end() - 1
    close_index = find_closing_paren(method_call, open_index)
    if close_index == -1:
        raise CommandSyntaxError("Invalid method call format")
    return (m.group(1),
            method_call[open_index + 1:close_index].strip(),
            method_call[close_index + 1:].strip())


def parse_chain(chain: str) -> dict:
    """Parse '.limit(5).sort({year: -1})' into {'limit': 5, 'sort': {...}}."""
    modifiers = {}
    while chain:
        if not chain.startswith("."):
            raise CommandSyntaxError(f"Unexpected text after method call: {chain!r}")
        name, args_str, chain = split_method_call(chain[1:])
        if name not in CHAIN_METHODS:
            raise CommandSyntaxError(f"Unsupported cursor method: {name}")
        if name in modifiers:
            raise CommandSyntaxError(f"{name}() given more than once")
        args = _arguments(args_str)
        if len(args) != 1:
            raise CommandSyntaxError(f"{name}() takes exactly one argument")
        value = args[0]
        if name in ("limit", "skip"):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise CommandSyntaxError(f"{name}(n) requires a non-negative integer")
        elif not isinstance(value, dict):
            raise CommandSyntaxError(f"{name}() requires an object")
        modifiers[name] = value
    return modifiers


def parse_find_args(args_str: str):
    """Parse find's 0-2 arguments into (filter, projection_or_None)."""
    args = _arguments(args_str) if args_str else []
    if len(args) > 2:
        raise CommandSyntaxError("At most two arguments supported (filter, projection)")
    filter_q = args[0] if args else {}
    projection = args[1] if len(args) > 1 else None
    if filter_q is None:
        filter_q = {}
    if not isinstance(filter_q, dict):
        raise CommandSyntaxError("find filter must be an object")
    if projection is not None and not isinstance(projection, dict):
        raise CommandSyntaxError("find projection must be an object")
    return filter_q, projection or None


def parse_method_call(collection: str, method_call: str) -> ParsedCommand:
    name, args_str, chain = split_method_call(method_call)
    if name not in ALLOWED_METHODS:
        raise CommandSyntaxError(f"Unsupported method: {name}")

    if name == "aggregate":
        if chain:
            raise CommandSyntaxError("aggregate() does not support chained methods")
        args = _arguments(args_str)
        if len(args) != 1:
            raise CommandSyntaxError("aggregate requires a single pipeline array argument")
        return _pipeline(args[0], collection)

    filter_q, projection = parse_find_args(args_str)
    modifiers = parse_chain(chain)
    if "project" in modifiers:
        if projection is not None:
            raise CommandSyntaxError("projection given both as argument and project()")
        projection = modifiers["project"] or None
    return FindSpec(filter=filter_q, projection=projection,
                    limit=modifiers.get("limit"), skip=modifiers.get("skip"),
                    sort=modifiers.get("sort"), collection=collection)


def _match_db_prefix(text: str):
    m = _DB_PREFIX_RE.match(text)
    return (m.group(1), m.group(2)) if m else None


def _cap(command: ParsedCommand) -> ParsedCommand:
    if isinstance(command, FindSpec):
        limit = command.limit if command.limit else SEARCH_RESULT_CAP
        return FindSpec(filter=command.filter, projection=command.projection,
                        limit=min(limit, SEARCH_RESULT_CAP), skip=command.skip,
                        sort=command.sort, collection=command.collection)
    return command


def _parse_search(text: str) -> ParsedCommand:
    if text.startswith("[") and text.endswith("]"):
        return _pipeline(_literal(text))

    prefix = _match_db_prefix(text)
    if prefix:
        return parse_method_call(*prefix)

    value = _literal(text)
    if isinstance(value, list):
        return _pipeline(value)
    if isinstance(value, dict):
        return FindSpec(filter=value)
    raise CommandSyntaxError("Query must be a filter object, a pipeline array or db.collection.method()")


def _parse_envelope(text: str) -> ParsedCommand:
    try:
        envelope = json.loads(text)
    except ValueError:
        raise CommandSyntaxError("Query must start with db.collection.method() or be valid JSON")
    if not isinstance(envelope, dict):
        raise CommandSyntaxError("JSON query must be an object with an 'operation' field")
    operation = envelope.get("operation")
    if operation != "find":
        raise CommandSyntaxError(f"Unsupported operation: {operation}")
    filter_q = envelope.get("filter")
    projection = envelope.get("project")
    if filter_q is None:
        filter_q = {}
    if not isinstance(filter_q, dict):
        raise CommandSyntaxError("filter must be an object")
    if projection is not None and not isinstance(projection, dict):
        raise CommandSyntaxError("project must be an object")
    return FindSpec(filter=filter_q, projection=projection or None, collection=ENVELOPE_COLLECTION)


def _parse_query(text: str) -> ParsedCommand:
    prefix = _match_db_prefix(text)
    if prefix:
        return parse_method_call(*prefix)
    return _parse_envelope(text)


def _safe_parse(parse, text) -> ParsedCommand:
    if not isinstance(text, str):
        return ParseError("query must be a string")
    text = clean_query(text)
    if not text:
        return ParseError("empty query")
    try:
        return parse(text)
    except CommandSyntaxError as e:
        return ParseError(str(e))
    except RecursionError:
        return ParseError("Query is nested too deeply")


def parse_search_command(text: str) -> ParsedCommand:
    """Parse input of the search endpoint: pipelines, filters or db.<coll>.<method>()."""
    return _cap(_safe_parse(_parse_search, text))


def parse_query_command(text: str) -> ParsedCommand:
    """Parse input of the query endpoint: db.<coll>.<method>() or a JSON envelope."""
    return _safe_parse(_parse_query, text)
