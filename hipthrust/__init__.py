"""Staged request-handling pipelines for FastAPI.

A handler config names optional stages that always run in the same order
(sanitize input, pre-authorize, attach data, final-authorize, do work,
respond, sanitize response); :func:`handler_factory` compiles it into an
endpoint.
"""

from .core import lifecycle
from .core.exceptions import HandlerConfigError, RedirectException
from .core.pipeline import (
    assert_handler_config,
    define_handler,
    execute_pipeline,
    with_default_implementations,
)
from .core.types import Context, HandlerConfig, RequestContext, WorkResponse
from .handler import handler_factory, register_handler

__all__ = [
    "Context",
    "HandlerConfig",
    "HandlerConfigError",
    "RedirectException",
    "RequestContext",
    "WorkResponse",
    "assert_handler_config",
    "define_handler",
    "execute_pipeline",
    "handler_factory",
    "lifecycle",
    "register_handler",
    "with_default_implementations",
]
