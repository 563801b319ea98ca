from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from . import database, routes, static
from .config import Settings, load_settings
from .errors import QueryError
from .logging_config import logger, setup_logging


def create_app(settings: Optional[Settings] = None,
               context: Optional[database.DatabaseContext] = None) -> FastAPI:
    """Build the app; pass `context` to skip connecting at startup."""
    settings = settings or load_settings()
    setup_logging(settings.log_level)

    app = FastAPI(title="querylab")
    app.state.settings = settings
    app.state.database = context

    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"],
                       allow_headers=["*"])
    app.add_exception_handler(QueryError, routes.query_error_handler)
    app.add_exception_handler(RequestValidationError, routes.validation_error_handler)

    @app.on_event("startup")
    def startup_event():
        if app.state.database is None:
            app.state.database = database.connect(settings)

    @app.on_event("shutdown")
    def shutdown_event():
        if app.state.database is not None:
            app.state.database.close()

    app.include_router(routes.router)
    app.include_router(static.router)
    logger.info(f"Search Lab: http://localhost:{settings.port}/{static.SEARCH_LAB}")
    logger.info(f"SQL Lab: http://localhost:{settings.port}/{static.SQL_LAB}")
    return app
