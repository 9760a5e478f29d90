"""FastAPI application factory."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..client import ConnectionManager, initialize_connection_manager, shutdown_connection_manager
from ..config import ServerConfig
from ..errors import DataApiError, ErrorHandler, get_logger, log_error, log_operation
from ..service import RetrievalOrchestrator
from .routes import router


logger = get_logger(__name__)


def create_app(
    config: Optional[ServerConfig] = None,
    orchestrator: Optional[RetrievalOrchestrator] = None,
    connection_manager: Optional[ConnectionManager] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        config: Server configuration; read from the environment when omitted
        orchestrator: Retrieval orchestrator; built from the connection manager when omitted
        connection_manager: Database connection owner; the process-wide one is
            initialised when omitted and shut down with the app

    Returns:
        Configured FastAPI app whose shutdown closes the database connection
    """
    if config is None:
        config = ServerConfig.from_env()
    config.validate()

    owns_process_manager = connection_manager is None
    if owns_process_manager:
        connection_manager = initialize_connection_manager(config)
    if orchestrator is None:
        orchestrator = RetrievalOrchestrator(
            connection_manager,
            match_column_concepts=config.match_column_concepts,
        )

    @asynccontextmanager
    async def lifespan(_application: FastAPI) -> AsyncIterator[None]:
        log_operation(logger, "server_startup", **config.summary())
        yield
        log_operation(logger, "server_shutdown_initiated")
        if owns_process_manager:
            shutdown_connection_manager()
        else:
            connection_manager.close()
        log_operation(logger, "server_shutdown_completed")

    app = FastAPI(title="Business Data API", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.connection_manager = connection_manager
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_allow_origins,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(DataApiError)
    async def data_api_error_handler(request: Request, exc: DataApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorHandler.to_response(exc, include_diagnostics=config.include_diagnostics),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        error = ErrorHandler.handle_error(exc, operation=request.url.path)
        log_error(logger, error, operation=request.url.path)
        return JSONResponse(
            status_code=500,
            content=ErrorHandler.to_response(error, include_diagnostics=config.include_diagnostics),
        )

    app.include_router(router)
    return app
