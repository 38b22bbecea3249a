"""Pydantic-backed stage factories.

Sanitizers turn client input into plain validated data and answer 400 when
it does not match; the response sanitizer answers 500 because a response
that does not match its schema is a server bug, not a client error.
"""

import json
import logging
from typing import Annotated, Any, Optional, Type

from fastapi import HTTPException
from jsonmask import apply_json_mask, parse_fields
from pydantic import BaseModel, Field, TypeAdapter, ValidationError, create_model

from . import lifecycle


logger = logging.getLogger(__name__)

ID_FIELD = "_id"


def _adapter(schema: Any) -> TypeAdapter:
    if isinstance(schema, TypeAdapter):
        return schema
    return TypeAdapter(schema)


def _errors(exc: ValidationError) -> list:
    return json.loads(exc.json())


def _bad_request(message: str, exc: ValidationError) -> HTTPException:
    return HTTPException(status_code=400, detail={"message": message, "errors": _errors(exc)})


def strip_id_transform(obj: Any) -> Any:
    """Drop the ``_id`` key so clients cannot choose a document's identity."""
    if isinstance(obj, dict):
        return {key: value for key, value in obj.items() if key != ID_FIELD}
    return obj


def deep_wipe_default(obj: Any) -> Any:
    if isinstance(obj, list):
        return [deep_wipe_default(elm) for elm in obj]
    if isinstance(obj, dict):
        return {key: deep_wipe_default(value) for key, value in obj.items() if key != "default"}
    return obj


def _validating_sanitizer(schema: Any, message: str):
    adapter = _adapter(schema)

    def sanitize(unsafe: Any) -> Any:
        try:
            parsed = adapter.validate_python(unsafe)
        except ValidationError as exc:
            raise _bad_request(message, exc)
        return strip_id_transform(adapter.dump_python(parsed))

    return sanitize


def sanitize_params_with(schema: Any):
    return lifecycle.sanitize_params(_validating_sanitizer(schema, "Params not valid"))


def sanitize_query_params_with(schema: Any):
    return lifecycle.sanitize_query_params(_validating_sanitizer(schema, "Query params not valid"))


def _partial_model(schema: Type[BaseModel]) -> Type[BaseModel]:
    """Derive a model whose fields are all optional but keep their constraints.

    Field constraints move onto the inner type so ``None`` is still accepted,
    and subclassing ``schema`` keeps its validators.
    """
    fields = {}
    for name, info in schema.model_fields.items():
        inner = Annotated[(info.annotation, *info.metadata)] if info.metadata else info.annotation
        fields[name] = (Optional[inner], Field(default=None, alias=info.alias))
    return create_model(f"Partial{schema.__name__}", __base__=schema, **fields)


def sanitize_body_with(schema: Type[BaseModel], partial: bool = False):
    """Validate the whole body against ``schema``.

    With ``partial=True`` every field becomes optional and only the fields
    the client actually sent are returned, which suits PATCH-style updates.
    """
    if not partial:
        return lifecycle.sanitize_body(_validating_sanitizer(schema, "Body not valid"))

    model = _partial_model(schema)

    def sanitize(unsafe: Any) -> dict:
        try:
            parsed = model.model_validate(unsafe)
        except ValidationError as exc:
            raise _bad_request("Body not valid", exc)
        return strip_id_transform(parsed.model_dump(exclude_unset=True))

    return lifecycle.sanitize_body(sanitize)


def sanitize_response_with(schema: Any):
    adapter = _adapter(schema)

    def sanitize(unsafe: Any) -> Any:
        try:
            parsed = adapter.validate_python(unsafe, from_attributes=True)
        except ValidationError as exc:
            logger.error(f"Response validation failed: {exc}")
            raise HTTPException(status_code=500, detail="Response validation failed")
        return adapter.dump_python(parsed, mode="json")

    return lifecycle.sanitize_response(sanitize)


def pojo_to_validated(pojo_key: str, schema: Any, new_validated_key: str):
    """Attach ``ctx[pojo_key]`` validated against ``schema`` as ``new_validated_key``."""
    adapter = _adapter(schema)

    def attach(ctx: dict) -> dict:
        try:
            parsed = adapter.validate_python(ctx.get(pojo_key), from_attributes=True)
        except ValidationError as exc:
            raise _bad_request("Data validation failed", exc)
        return {new_validated_key: adapter.dump_python(parsed)}

    return lifecycle.attach_data(attach)


def dto_schema_obj(schema_config_object: Any, mask_config: str) -> Any:
    """Select the fields named by a json-mask ``mask_config`` and drop every ``default``.

    Accepts a JSON-schema-like dict or a pydantic model class, whose
    ``model_json_schema()`` is used.
    """
    if isinstance(schema_config_object, type) and issubclass(schema_config_object, BaseModel):
        schema_config_object = schema_config_object.model_json_schema()
    return deep_wipe_default(apply_json_mask(schema_config_object, parse_fields(mask_config)))
