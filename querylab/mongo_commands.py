import json
import logging
from dataclasses import dataclass
from typing import Optional

from bson import json_util
from bson.errors import BSONError
from bson.json_util import RELAXED_JSON_OPTIONS
from pymongo.errors import ExecutionTimeout, PyMongoError

from .errors import ExecutionError, NotConnected, QueryParseError, QueryTimeout
from .literals import to_literal
from .parsers import FindSpec, ParsedCommand, ParseError, Pipeline

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    documents: list
    count: int

    def to_dict(self) -> dict:
        return {"success": True, "result": self.documents, "count": self.count}


def serialize_documents(documents: list) -> list:
    """Convert BSON values (ObjectId, datetime, Decimal128...) to plain JSON."""
    return json.loads(json_util.dumps(documents, json_options=RELAXED_JSON_OPTIONS))


def _run_find(collection, spec: FindSpec, timeout_ms: Optional[int]):
    cursor = collection.find(spec.filter, spec.projection or None)
    if spec.sort:
        cursor = cursor.sort(list(spec.sort.items()))
    if spec.skip:
        cursor = cursor.skip(spec.skip)
    if spec.limit:
        cursor = cursor.limit(spec.limit)
    if timeout_ms:
        cursor = cursor.max_time_ms(timeout_ms)
    return list(cursor)


def _run_aggregate(collection, pipeline: Pipeline, timeout_ms: Optional[int]):
    kwargs = {"maxTimeMS": timeout_ms} if timeout_ms else {}
    return list(collection.aggregate(list(pipeline.stages), **kwargs))


def execute_command(database, command: ParsedCommand, default_collection: str,
                    timeout_ms: Optional[int] = None,
                    failure_message: str = ExecutionError.message) -> ExecutionResult:
    """Run a parsed find/aggregate command against `database` (read-only, one round trip)."""
    if database is None:
        raise NotConnected()
    if isinstance(command, ParseError):
        raise QueryParseError(details=command.reason)
    if not isinstance(command, (FindSpec, Pipeline)):
        raise QueryParseError(details=f"Unsupported command: {type(command).__name__}")

    collection_name = command.collection or default_collection
    try:
        collection = database[collection_name]
        if isinstance(command, Pipeline):
            logger.info(f"Executing pipeline on {collection_name}: {to_literal(list(command.stages))}")
            documents = _run_aggregate(collection, command, timeout_ms)
        else:
            logger.info(f"Executing find on {collection_name}: {to_literal(command.filter)}")
            documents = _run_find(collection, command, timeout_ms)
    except ExecutionTimeout as e:
        logger.error(f"Query on {collection_name} timed out: {e}")
        raise QueryTimeout(details=str(e))
    except PyMongoError as e:
        logger.error(f"MongoDB execution error on {collection_name}: {e}")
        raise ExecutionError(failure_message, details=str(e))
    except (BSONError, OverflowError, UnicodeEncodeError) as e:
        logger.error(f"Query on {collection_name} could not be encoded: {e}")
        raise QueryParseError(details=str(e))

    documents = serialize_documents(documents)
    return ExecutionResult(documents=documents, count=len(documents))
