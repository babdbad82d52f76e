"""Exception handlers that render every error as ``{success: false, message}``."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


def _validation_message(exc: RequestValidationError) -> str:
    """First validation error as ``field: reason``."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    if location:
        return f"{'.'.join(location)}: {first.get('msg', 'invalid value')}"
    return first.get("msg", "Invalid request")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Known HTTP errors (400, 401, 403, 404, 502...)."""
        return error_response(exc.status_code, str(exc.detail), headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Missing or malformed input is a plain 400."""
        return error_response(status.HTTP_400_BAD_REQUEST, _validation_message(exc))

    @app.exception_handler(Exception)
    async def handle_exception(request: Request, exc: Exception) -> JSONResponse:
        """Unexpected errors; the stack trace stays in the logs."""
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Something went wrong. Please try again later.",
        )
