"""Route handlers.

Handlers are plain ``def`` so FastAPI runs them in its thread pool; the
database driver blocks.
"""

import platform
from typing import Any, Dict, Optional

from fastapi import APIRouter, Query, Request

from ..errors import ErrorHandlingContext
from ..models import utc_timestamp


router = APIRouter()


@router.get("/health")
def health(request: Request) -> Dict[str, Any]:
    """Liveness check; never touches the database."""
    return {
        "status": "healthy",
        "timestamp": utc_timestamp(),
        "pythonVersion": platform.python_version(),
        "environment": request.app.state.config.environment,
    }


@router.get("/test")
def test_connection(request: Request) -> Dict[str, Any]:
    """Open (or health-check) the database connection."""
    config = request.app.state.config
    with ErrorHandlingContext("test_connection", resource=config.db_server, connecting=True):
        info = request.app.state.connection_manager.test_connection()

    return {
        "success": True,
        "message": "Database connection successful",
        "server": info["server"],
        "database": info["database"],
        "timestamp": utc_timestamp(),
    }


@router.get("/api/data")
def get_data(
    request: Request,
    start_date: Optional[str] = Query(None, alias="startDate", description="YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, alias="endDate", description="YYYY-MM-DD"),
) -> Dict[str, Any]:
    """Rows of the discovered business-written table within a date range."""
    result = request.app.state.orchestrator.retrieve(start_date, end_date)
    return result.to_response()
