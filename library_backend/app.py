"""
FastAPI application entry point for the library backend.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from library_backend.config import get_settings
from library_backend.errors import LibraryBackendError
from library_backend.routes import router


async def handle_backend_error(request: Request, exc: LibraryBackendError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def handle_validation_error(request: Request, exc: RequestValidationError):
    """Malformed bodies are 400s with the same ``{"error": ...}`` shape."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = error.get("msg", "invalid value")
        problems.append(f"{location}: {message}" if location else message)
    return JSONResponse(
        status_code=400,
        content={"error": "; ".join(problems) or "Invalid request body"},
    )


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Library Fees Backend", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)
    app.add_exception_handler(LibraryBackendError, handle_backend_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    return app


app = create_app()
