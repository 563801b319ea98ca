import logging
from typing import Optional

from .errors import InternalError, MissingInput, NotConnected, QueryError, QueryParseError
from .mongo_commands import execute_command
from .parsers import parse_query_command, parse_search_command

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_COLLECTION = "movies"
DEFAULT_QUERY_COLLECTION = "books"


def _run(database, query, parse, default_collection: str,
         timeout_ms: Optional[int], failure_message: str, label: str) -> dict:
    if database is None:
        raise NotConnected()
    if not query or not str(query).strip():
        raise MissingInput()
    if not isinstance(default_collection, str):
        raise QueryParseError(details="collection must be a string")

    logger.info(f"Received {label} query: {query}")
    try:
        command = parse(query)
        result = execute_command(database, command, default_collection,
                                 timeout_ms=timeout_ms, failure_message=failure_message)
    except QueryError:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error running {label} query")
        raise InternalError(failure_message, details=str(e))
    return result.to_dict()


def run_search(database, query: str, collection: Optional[str] = None,
               timeout_ms: Optional[int] = None) -> dict:
    """Search lab: pipelines, filters and db.<coll>.find/aggregate, finds capped at 20."""
    return _run(database, query, parse_search_command,
                collection or DEFAULT_SEARCH_COLLECTION, timeout_ms,
                "Failed to execute search query", "search")


def run_query(database, query: str, timeout_ms: Optional[int] = None) -> dict:
    """SQL lab: db.<coll>.find/aggregate or a JSON {operation, filter, project} envelope."""
    return _run(database, query, parse_query_command,
                DEFAULT_QUERY_COLLECTION, timeout_ms,
                "Failed to execute query", "SQL")
