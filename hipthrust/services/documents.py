"""Persistence helpers over document-store model objects.

Models and documents only need the small surface described by the
protocols below; every method may be sync or async.
"""

import logging
from typing import Any, Optional, Protocol

from fastapi import HTTPException

from ..core import lifecycle
from ..core.lifecycle import resolve


logger = logging.getLogger(__name__)


class Document(Protocol):
    def save(self) -> Any: ...

    def set(self, data: Any) -> Any: ...


class ModelWithFindById(Protocol):
    def find_by_id(self, id: str) -> Any: ...


class ModelWithFindOne(Protocol):
    def find_one(self, filter: dict) -> Any: ...


def _is_blank(value: Any) -> bool:
    return not value or not str(value)


def find_by_id_required(model: ModelWithFindById):
    async def find(id: Any) -> Any:
        # An empty id must never reach the store, where it could match anything.
        if _is_blank(id):
            raise HTTPException(status_code=400, detail="Missing dependent resource ID")
        result = await resolve(model.find_by_id(id))
        if result is None:
            raise HTTPException(status_code=404, detail="Resource not found")
        return result

    return find


def find_one_by_required(model: ModelWithFindOne, field_name: str):
    async def find(field_value: Any) -> Any:
        if _is_blank(field_value):
            raise HTTPException(status_code=400, detail="Missing dependent resource value")
        result = await resolve(model.find_one({field_name: {"$eq": field_value}}))
        if result is None:
            raise HTTPException(status_code=404, detail="Resource not found")
        return result

    return find


def save_on_document_from(property_key_of_document: str):
    async def save(ctx: dict) -> dict:
        document: Optional[Document] = ctx.get(property_key_of_document)
        if document is None:
            raise HTTPException(status_code=400, detail="Resource not found")
        try:
            saved = await resolve(document.save())
        except Exception as e:
            logger.warning(f"Failed to save document '{property_key_of_document}': {e}")
            raise HTTPException(status_code=422, detail="Unable to save. Please check if data sent was valid.")
        return {property_key_of_document: saved}

    return lifecycle.do_work(save)


def update_document_from_to(property_key_of_document: str, property_key_with_new_data: str = "body"):
    async def update(ctx: dict) -> dict:
        document: Optional[Document] = ctx.get(property_key_of_document)
        if document is None:
            raise HTTPException(status_code=400, detail="Resource not found")
        updated = await resolve(document.set(ctx.get(property_key_with_new_data)))
        return {property_key_of_document: updated}

    return lifecycle.do_work(update)
