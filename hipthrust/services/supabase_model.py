import asyncio
import logging
from typing import Any, Optional

from supabase import Client, create_client

from ..core.config import Config


logger = logging.getLogger(__name__)


def get_client() -> Client:
    Config.validate()
    return create_client(Config.SUPABASE_URL, Config.SUPABASE_SERVICE_KEY)


def _eq_filters(filter: dict) -> list[tuple[str, Any]]:
    pairs = []
    for field_name, condition in filter.items():
        if isinstance(condition, dict):
            unsupported = set(condition) - {"$eq"}
            if unsupported:
                raise ValueError(f"Unsupported filter operator(s) for {field_name}: {', '.join(sorted(unsupported))}")
            pairs.append((field_name, condition["$eq"]))
        else:
            pairs.append((field_name, condition))
    return pairs


class SupabaseDocument(dict):
    """A table row that can be changed with :meth:`set` and persisted with :meth:`save`."""

    def __init__(self, model: "SupabaseModel", record: Optional[dict] = None):
        super().__init__(record or {})
        self.model = model
        self.pending: dict = {} if record and model.id_field in record else dict(self)

    @property
    def id(self) -> Any:
        return self.get(self.model.id_field)

    def set(self, data: Optional[dict]) -> "SupabaseDocument":
        changes = dict(data or {})
        self.update(changes)
        self.pending.update(changes)
        return self

    async def save(self) -> "SupabaseDocument":
        if self.id is None:
            stored = await self.model.insert(dict(self))
        elif self.pending:
            stored = await self.model.update_by_id(self.id, self.pending)
        else:
            return self
        self.update(stored)
        self.pending = {}
        return self


class SupabaseModel:
    """Document-store model over a single Supabase table.

    Blocking SDK calls run in the default thread pool via asyncio.to_thread.
    """

    def __init__(self, table: str, client: Optional[Client] = None, id_field: str = "id"):
        self.table = table
        self.id_field = id_field
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_client()
        return self._client

    def document(self, record: Optional[dict] = None) -> SupabaseDocument:
        return SupabaseDocument(self, record)

    def _select_first(self, pairs: list[tuple[str, Any]]) -> Optional[dict]:
        query = self.client.table(self.table).select("*")
        for field_name, value in pairs:
            query = query.eq(field_name, value)
        result = query.limit(1).execute()
        return result.data[0] if result.data else None

    async def find_one(self, filter: dict) -> Optional[SupabaseDocument]:
        try:
            record = await asyncio.to_thread(self._select_first, _eq_filters(filter))
        except Exception as e:
            logger.error(f"Failed to query {self.table} with {filter}: {e}")
            raise
        return self.document(record) if record is not None else None

    async def find_by_id(self, id: Any) -> Optional[SupabaseDocument]:
        return await self.find_one({self.id_field: {"$eq": id}})

    def _insert(self, data: dict) -> dict:
        result = self.client.table(self.table).insert(data).execute()
        if not result.data:
            raise RuntimeError(f"Insert into {self.table} returned no rows")
        return result.data[0]

    def _update(self, id: Any, changes: dict) -> dict:
        result = self.client.table(self.table).update(changes).eq(self.id_field, id).execute()
        if not result.data:
            raise RuntimeError(f"No {self.table} row found with {self.id_field}={id}")
        return result.data[0]

    async def insert(self, data: dict) -> dict:
        try:
            return await asyncio.to_thread(self._insert, data)
        except Exception as e:
            logger.error(f"Failed to insert into {self.table}: {e}")
            raise

    async def update_by_id(self, id: Any, changes: dict) -> dict:
        try:
            return await asyncio.to_thread(self._update, id, changes)
        except Exception as e:
            logger.error(f"Failed to update {self.table} {self.id_field}={id}: {e}")
            raise
