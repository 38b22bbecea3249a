"""Handler definition and pipeline execution.

A handler config is compiled in two steps: :func:`assert_handler_config`
rejects configs that cannot run, :func:`with_default_implementations` fills
the optional stages that merge into the context. :func:`execute_pipeline`
then runs the stages strictly in order for one request.
"""

import dataclasses
import logging
from collections.abc import Mapping
from typing import Any, Optional

from fastapi import HTTPException

from .exceptions import HandlerConfigError
from .lifecycle import resolve, stage_slot
from .types import (
    AUTHORIZATION_STAGES,
    REQUIRED_STAGES,
    STAGE_ORDER,
    Context,
    HandlerConfig,
    WorkResponse,
)


logger = logging.getLogger(__name__)

# Absent sanitizers and init_pre_context leave their key out of the context instead.
_DEFAULTED_STAGES = ("attach_data", "do_work")

# (stage name, context key) for the input sanitizers.
_INPUT_SANITIZERS = (
    ("sanitize_params", "params"),
    ("sanitize_query_params", "query_params"),
    ("sanitize_body", "body"),
)


def _empty_stage(_: Any) -> dict:
    return {}


def _as_config(config: Any) -> HandlerConfig:
    if isinstance(config, HandlerConfig):
        return config
    if isinstance(config, Mapping):
        unknown = sorted(set(config) - set(STAGE_ORDER))
        if unknown:
            raise HandlerConfigError(f"Unknown pipeline stage(s): {', '.join(unknown)}")
        return HandlerConfig(**config)
    raise HandlerConfigError(f"Handler config must be a HandlerConfig or a mapping, got {type(config).__name__}")


def assert_handler_config(config: Any) -> HandlerConfig:
    """Validate ``config`` and return it as a :class:`HandlerConfig`."""
    config = _as_config(config)
    stages = config.stages()

    missing = [name for name in STAGE_ORDER if name in REQUIRED_STAGES and name not in stages]
    if missing:
        raise HandlerConfigError(f"Handler config is missing required stage(s): {', '.join(missing)}")

    for name, stage in stages.items():
        if not callable(stage):
            raise HandlerConfigError(f"Stage '{name}' must be callable, got {type(stage).__name__}")
        slot = stage_slot(stage)
        if slot is not None and slot != name:
            raise HandlerConfigError(f"Stage built for '{slot}' cannot be used as '{name}'")

    return config


def with_default_implementations(config: HandlerConfig) -> HandlerConfig:
    defaults = {name: _empty_stage for name in _DEFAULTED_STAGES if getattr(config, name) is None}
    return dataclasses.replace(config, **defaults)


def define_handler(config: Optional[Any] = None, **stages: Any) -> HandlerConfig:
    """Build and validate a handler config.

    Accepts a :class:`HandlerConfig`, a mapping of stage names, keyword
    stages, or a base config overridden by keyword stages.
    """
    if config is None:
        merged: dict = {}
    else:
        merged = dict(_as_config(config).stages())
    merged.update(stages)
    return assert_handler_config(merged)


def _merge(ctx: Context, stage_name: str, output: Any) -> Context:
    if output is None or output is True:
        return ctx
    if output is False:
        if stage_name in AUTHORIZATION_STAGES:
            logger.debug(f"Stage '{stage_name}' refused the request")
            raise HTTPException(status_code=403, detail="Forbidden")
        raise HandlerConfigError(f"Stage '{stage_name}' returned False but is not an authorization stage")
    if isinstance(output, Mapping):
        return {**ctx, **output}
    raise HandlerConfigError(
        f"Stage '{stage_name}' must return a mapping to merge into the context, got {type(output).__name__}"
    )


def _as_work_response(value: Any) -> WorkResponse:
    if isinstance(value, WorkResponse):
        return value
    if isinstance(value, Mapping) and "response" in value:
        return WorkResponse(response=value["response"], status=value.get("status", 200))
    raise HandlerConfigError(
        f"Stage 'respond' must return a WorkResponse or a mapping with a 'response' key, got {type(value).__name__}"
    )


async def execute_pipeline(
    config: HandlerConfig,
    request_context: Any,
    params: Any,
    query_params: Any,
    body: Any,
) -> WorkResponse:
    """Run every stage of ``config`` for one request.

    ``config`` must already have passed :func:`assert_handler_config` and
    :func:`with_default_implementations`.
    """
    ctx: Context = {}

    if config.init_pre_context is not None:
        ctx["pre_context"] = await resolve(config.init_pre_context(request_context))

    raw_inputs = {"params": params, "query_params": query_params, "body": body}
    for stage_name, key in _INPUT_SANITIZERS:
        stage = getattr(config, stage_name)
        if stage is not None:
            ctx[key] = await resolve(stage({key: raw_inputs[key]}))

    for stage_name in ("pre_authorize", "attach_data", "final_authorize", "do_work"):
        output = await resolve(getattr(config, stage_name)(ctx))
        ctx = _merge(ctx, stage_name, output)

    work_response = _as_work_response(await resolve(config.respond(ctx)))
    response = await resolve(config.sanitize_response({"response": work_response.response}))
    return WorkResponse(response=response, status=work_response.status)
