from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .errors import NotConnected, QueryError, QueryParseError
from .logging_config import logger
from .runner import run_query, run_search
from .schemas import QueryRequest, SearchRequest

router = APIRouter(prefix="/api")

LABS = {
    "search-lab": "available at /search-lab",
    "sql-to-query-api-lab": "available at /sql-to-query-api-lab",
}


def get_database(request: Request):
    context = getattr(request.app.state, "database", None)
    return context.db if context is not None else None


def get_timeout(request: Request):
    return request.app.state.settings.query_timeout_ms


async def query_error_handler(request: Request, exc: QueryError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.url.path} failed: {exc}")
    else:
        logger.warning(f"{request.url.path} rejected: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Answer malformed request bodies with the same 400 shape as a bad query."""
    error = QueryParseError(details="request body must be a JSON object")
    if get_database(request) is None:
        error = NotConnected()
    return await query_error_handler(request, error)


@router.get("/health")
async def health_check(request: Request):
    context = getattr(request.app.state, "database", None)
    return {
        "status": "ok",
        "connected": bool(context and context.connected),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "labs": LABS,
    }


@router.post("/search/execute")
def search_execute(body: Optional[SearchRequest] = None, database=Depends(get_database),
                   timeout_ms=Depends(get_timeout)):
    body = body or SearchRequest()
    return run_search(database, body.query, body.collection, timeout_ms=timeout_ms)


@router.post("/query/execute")
def query_execute(body: Optional[QueryRequest] = None, database=Depends(get_database),
                  timeout_ms=Depends(get_timeout)):
    body = body or QueryRequest()
    return run_query(database, body.query, timeout_ms=timeout_ms)
