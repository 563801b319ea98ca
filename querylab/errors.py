from typing import Optional


class QueryError(Exception):
    """Base error rendered as {"error": ..., "details": ...}."""

    status_code = 500
    message = "Failed to execute query"

    def __init__(self, error: Optional[str] = None, details: Optional[str] = None):
        self.error = error or self.message
        self.details = details
        super().__init__(self.error if details is None else f"{self.error}: {details}")

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.details is not None:
            body["details"] = self.details
        return body


class MissingInput(QueryError):
    status_code = 400
    message = "Query is required"


class NotConnected(QueryError):
    status_code = 400
    message = "Not connected to database. Please connect first."


class QueryParseError(QueryError):
    status_code = 400
    message = "Invalid query format"


class ExecutionError(QueryError):
    status_code = 500


class QueryTimeout(ExecutionError):
    message = "Query timed out"


class InternalError(QueryError):
    status_code = 500
