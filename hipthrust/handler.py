import json
import logging
from typing import Any, Iterable

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from .core.exceptions import RedirectException
from .core.pipeline import assert_handler_config, execute_pipeline, with_default_implementations
from .core.types import RequestContext


logger = logging.getLogger(__name__)


def _query_params(request: Request) -> dict:
    result: dict = {}
    for key, value in request.query_params.multi_items():
        if key in result:
            existing = result[key]
            result[key] = existing + [value] if isinstance(existing, list) else [existing, value]
        else:
            result[key] = value
    return result


async def _read_body(request: Request) -> Any:
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body is not valid JSON")


def handler_factory(config: Any):
    """Compile a handler config into a FastAPI endpoint.

    Redirect signals become redirect responses; every other exception is
    left to the application's exception handlers.
    """
    full_config = with_default_implementations(assert_handler_config(config))

    async def endpoint(request: Request) -> Response:
        request_context = RequestContext(request=request)
        try:
            body = await _read_body(request)
            result = await execute_pipeline(
                full_config,
                request_context,
                dict(request.path_params),
                _query_params(request),
                body,
            )
        except RedirectException as exc:
            logger.debug(f"{request.method} {request.url.path} redirected ({exc.redirect_code}) to {exc.redirect_url}")
            return RedirectResponse(exc.redirect_url, status_code=exc.redirect_code, headers=request_context.headers)

        if result.status == 204:
            return Response(status_code=204, headers=request_context.headers)
        return JSONResponse(content=result.response, status_code=result.status, headers=request_context.headers)

    return endpoint


def register_handler(router: Any, path: str, config: Any, methods: Iterable[str] = ("GET",), **route_kwargs: Any):
    """Mount a compiled handler on a FastAPI app or ``APIRouter``."""
    endpoint = handler_factory(config)
    router.add_api_route(path, endpoint, methods=list(methods), **route_kwargs)
    return endpoint
