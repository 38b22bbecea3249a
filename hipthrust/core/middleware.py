import logging
import time
from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse

from .config import Config


logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 1.0


def cors_allowed_origins() -> list[str]:
    return Config.allowed_origins()


def _apply_cors_headers(request: Request, response) -> None:
    origin = request.headers.get("origin")
    if origin and origin in cors_allowed_origins():
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"


def _request_id(request: Request) -> str:
    return request.headers.get("x-request-id") or f"{int(time.time() * 1000)}-{id(request)}"


async def log_requests(request: Request, call_next: Callable):
    start_time = time.time()
    request_id = _request_id(request)

    try:
        response = await call_next(request)
        process_time = time.time() - start_time
        # Only log slow requests or errors
        if process_time > SLOW_REQUEST_SECONDS or response.status_code >= 400:
            logger.info(f"[{request_id}] {request.method} {request.url.path} - {response.status_code} - {process_time:.2f}s")
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.error(f"[{request_id}] {request.method} {request.url.path} - ERROR: {str(e)} - {process_time:.2f}s")
        raise


async def global_exception_handler(request: Request, exc: Exception):
    """Last stop for exceptions the pipeline did not turn into a response."""
    request_id = _request_id(request)
    logger.error(f"[{request_id}] Unhandled exception in {request.method} {request.url.path}: {str(exc)}", exc_info=True)

    response = JSONResponse(status_code=500, content={"detail": "Internal server error"})
    _apply_cors_headers(request, response)
    return response
