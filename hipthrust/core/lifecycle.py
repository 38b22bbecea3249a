"""Stage factories.

Each factory adapts a plain function to the input shape its pipeline slot
receives and tags the result with the slot it was built for, so a stage put
into the wrong slot is rejected when the handler is defined. All factories
work as decorators as well::

    @lifecycle.respond
    def show(ctx):
        return ctx["memory"]
"""

import functools
import inspect
from typing import Any, Callable

from fastapi import HTTPException

from .types import Context, WorkResponse


STAGE_MARKER = "__hipthrust_stage__"


async def resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _tag(stage: Callable, slot: str, fn: Callable) -> Callable:
    functools.update_wrapper(stage, fn)
    setattr(stage, STAGE_MARKER, slot)
    return stage


def stage_slot(stage: Callable) -> str | None:
    """Return the slot a stage was built for, if it came from a factory."""
    return getattr(stage, STAGE_MARKER, None)


def _input_sanitizer(slot: str, key: str, fn: Callable) -> Callable:
    async def stage(i: Context) -> Any:
        return await resolve(fn(i.get(key)))

    return _tag(stage, slot, fn)


def _context_stage(slot: str, fn: Callable) -> Callable:
    async def stage(ctx: Context) -> Any:
        return await resolve(fn(ctx))

    return _tag(stage, slot, fn)


def sanitize_params(fn: Callable) -> Callable:
    return _input_sanitizer("sanitize_params", "params", fn)


def sanitize_query_params(fn: Callable) -> Callable:
    return _input_sanitizer("sanitize_query_params", "query_params", fn)


def sanitize_body(fn: Callable) -> Callable:
    return _input_sanitizer("sanitize_body", "body", fn)


def sanitize_response(fn: Callable) -> Callable:
    return _input_sanitizer("sanitize_response", "response", fn)


def pre_authorize(fn: Callable) -> Callable:
    return _context_stage("pre_authorize", fn)


def attach_data(fn: Callable) -> Callable:
    return _context_stage("attach_data", fn)


def final_authorize(fn: Callable) -> Callable:
    return _context_stage("final_authorize", fn)


def do_work(fn: Callable) -> Callable:
    return _context_stage("do_work", fn)


def respond(fn: Callable | None = None, *, status: int = 200) -> Callable:
    """Wrap ``fn(ctx)``'s return value in a :class:`WorkResponse`.

    Usable bare (``@respond``) or with a status (``@respond(status=201)``).
    """

    def wrap(inner: Callable) -> Callable:
        async def stage(ctx: Context) -> WorkResponse:
            return WorkResponse(response=await resolve(inner(ctx)), status=status)

        return _tag(stage, "respond", inner)

    if fn is None:
        return wrap
    return wrap(fn)


def allow(ctx: Context) -> dict:
    """Authorization stage that always passes."""
    return {}


def deny(ctx: Context) -> dict:
    """Authorization stage that always refuses."""
    raise HTTPException(status_code=403, detail="Forbidden")


def pass_through(value: Any) -> Any:
    """Sanitizer that trusts its input unchanged."""
    return value
