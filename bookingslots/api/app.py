"""
FastAPI app factory.
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import AppConfig, get_default_config_path
from ..context import SchedulingContext, build_context
from ..domain.exceptions import (
    BookingNotFound,
    InvalidBookingRequest,
    InvalidConfiguration,
    InvalidStatusTransition,
    SchedulingError,
    SlotConflict,
    UserNotFound,
)
from . import routes

logger = logging.getLogger(__name__)


def _error(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message})


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def invalid_input(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "invalid_request", "details": jsonable_errors(exc)},
        )

    @app.exception_handler(SchedulingError)
    async def scheduling_error(request: Request, exc: SchedulingError):
        if isinstance(exc, (UserNotFound, BookingNotFound)):
            return _error(404, "not_found", str(exc))
        if isinstance(exc, InvalidConfiguration):
            return _error(422, "setup_required", str(exc))
        if isinstance(exc, InvalidBookingRequest):
            return _error(400, "invalid_request", str(exc))
        if isinstance(exc, SlotConflict):
            return _error(409, "slot_conflict", exc.describe())
        if isinstance(exc, InvalidStatusTransition):
            return _error(409, "invalid_transition", str(exc))

        logger.error("Unhandled scheduling error: %s", exc)
        return _error(500, "internal_error", "Something went wrong")


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors without the non-serialisable ``ctx`` payloads."""
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]


def create_app(context: SchedulingContext) -> FastAPI:
    app = FastAPI(title="bookingslots", version=__version__)
    app.state.context = context
    _register_exception_handlers(app)
    app.include_router(routes.router, tags=["scheduling"])
    return app


def create_app_from_config(config_path: Optional[Path] = None) -> FastAPI:
    """Build the app from a YAML config; used by ``bookingslots serve``."""
    config = AppConfig.load_from_yaml(config_path or get_default_config_path())
    return create_app(build_context(config))
