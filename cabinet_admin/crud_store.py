"""
CRUD store boundary.

The relational data service is treated as an opaque store of rows keyed by
table name. Two implementations are provided:

- InMemoryCrudStore for tests and offline use
- PostgrestCrudStore for the hosted Supabase REST API, over httpx
"""

import copy
import uuid
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from .form_exceptions import StoreError

logger = logging.getLogger(__name__)

# PostgREST codes reused by the in-memory store so callers see one vocabulary
UNIQUE_VIOLATION = "23505"
NO_ROWS = "PGRST116"
INVALID_RESPONSE = "invalid_response"

DEFAULT_UNIQUE_CONSTRAINTS = {"forms": ["name"]}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class CrudStore(ABC):
    """Async CRUD interface over named tables."""

    @abstractmethod
    async def get(self, table: str, filters: Optional[Dict[str, Any]] = None,
                  order_by: Optional[str] = None, descending: bool = False) -> List[Dict[str, Any]]:
        """Rows of `table` whose columns equal every value in `filters`."""

    @abstractmethod
    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a row and return it as stored."""

    @abstractmethod
    async def update(self, table: str, record_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        """Patch the row with `record_id` and return it as stored."""

    @abstractmethod
    async def delete(self, table: str, record_id: str) -> bool:
        """Delete the row with `record_id`."""

    @abstractmethod
    async def count(self, table: str, filters: Optional[Dict[str, Any]] = None,
                    not_null: Optional[str] = None) -> int:
        """Count matching rows, optionally only those where `not_null` has a value."""

    @abstractmethod
    async def upsert(self, table: str, rows: List[Dict[str, Any]], on_conflict: str,
                     ignore_duplicates: bool = True) -> List[Dict[str, Any]]:
        """
        Insert rows, resolving conflicts on the unique column `on_conflict`.

        With ignore_duplicates the existing row wins and only newly inserted
        rows are returned; otherwise the existing row is merged with the new one.
        """

    async def get_one(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        rows = await self.get(table, {"id": record_id})
        return rows[0] if rows else None


class InMemoryCrudStore(CrudStore):
    """Dictionary-backed store with generated ids, timestamps and unique columns."""

    def __init__(self, unique_constraints: Optional[Dict[str, List[str]]] = None):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        if unique_constraints is None:
            unique_constraints = DEFAULT_UNIQUE_CONSTRAINTS
        self._unique = {table: list(columns) for table, columns in unique_constraints.items()}

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._tables.setdefault(table, {})

    def _find_conflict(self, table: str, row: Dict[str, Any],
                       exclude_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        for column in self._unique.get(table, []):
            if row.get(column) is None:
                continue
            for existing in self._table(table).values():
                if existing.get("id") != exclude_id and existing.get(column) == row[column]:
                    return existing
        return None

    @staticmethod
    def _matches(row: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
        return all(row.get(column) == value for column, value in (filters or {}).items())

    async def get(self, table: str, filters: Optional[Dict[str, Any]] = None,
                  order_by: Optional[str] = None, descending: bool = False) -> List[Dict[str, Any]]:
        rows = [copy.deepcopy(row) for row in self._table(table).values() if self._matches(row, filters)]
        if order_by:
            rows.sort(key=lambda row: (row.get(order_by) is None, row.get(order_by)), reverse=descending)
        return rows

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        if self._find_conflict(table, row) is not None:
            raise StoreError(
                f'duplicate key value violates unique constraint "{table}_unique"',
                code=UNIQUE_VIOLATION, status=409
            )
        stored = copy.deepcopy(row)
        stored.setdefault("id", str(uuid.uuid4()))
        now = _now_iso()
        stored.setdefault("created_at", now)
        stored.setdefault("updated_at", now)
        self._table(table)[stored["id"]] = stored
        logger.debug(f"Inserted row {stored['id']} into {table}")
        return copy.deepcopy(stored)

    async def update(self, table: str, record_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        existing = self._table(table).get(record_id)
        if existing is None:
            raise StoreError(
                "JSON object requested, multiple (or no) rows returned",
                code=NO_ROWS, details=f"No row in {table} with id {record_id}", status=406
            )
        merged = {**existing, **copy.deepcopy(patch), "id": record_id}
        if self._find_conflict(table, merged, exclude_id=record_id) is not None:
            raise StoreError(
                f'duplicate key value violates unique constraint "{table}_unique"',
                code=UNIQUE_VIOLATION, status=409
            )
        merged["updated_at"] = _now_iso()
        self._table(table)[record_id] = merged
        logger.debug(f"Updated row {record_id} in {table}")
        return copy.deepcopy(merged)

    async def delete(self, table: str, record_id: str) -> bool:
        self._table(table).pop(record_id, None)
        return True

    async def count(self, table: str, filters: Optional[Dict[str, Any]] = None,
                    not_null: Optional[str] = None) -> int:
        return sum(
            1 for row in self._table(table).values()
            if self._matches(row, filters) and (not_null is None or row.get(not_null) is not None)
        )

    async def upsert(self, table: str, rows: List[Dict[str, Any]], on_conflict: str,
                     ignore_duplicates: bool = True) -> List[Dict[str, Any]]:
        written = []
        for row in rows:
            existing = next(
                (r for r in self._table(table).values() if r.get(on_conflict) == row.get(on_conflict)),
                None
            )
            if existing is None:
                written.append(await self.insert(table, row))
            elif not ignore_duplicates:
                written.append(await self.update(table, existing["id"], row))
        return written


class PostgrestCrudStore(CrudStore):
    """
    Store backed by the Supabase REST API (PostgREST).

    A client is opened per call so the store can be shared by event loops
    started with asyncio.run.
    """

    def __init__(self, url: str, key: str, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        if not url or not key:
            raise StoreError("Database URL and key are required", code="config")
        self.base_url = f"{url.rstrip('/')}/rest/v1"
        self.key = key
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
        }
        return httpx.AsyncClient(
            base_url=self.base_url, headers=headers, timeout=self.timeout, transport=self.transport
        )

    @staticmethod
    def _filter_params(filters: Optional[Dict[str, Any]] = None,
                       not_null: Optional[str] = None) -> Dict[str, str]:
        params = {}
        for column, value in (filters or {}).items():
            if value is None:
                params[column] = "is.null"
            elif isinstance(value, bool):
                params[column] = f"eq.{str(value).lower()}"
            else:
                params[column] = f"eq.{value}"
        if not_null:
            params[not_null] = "not.is.null"
        return params

    @staticmethod
    def _raise_for_error(response: httpx.Response, context: str) -> None:
        if not response.is_error:
            return
        body: Dict[str, Any] = {}
        try:
            parsed = response.json()
            if isinstance(parsed, dict):
                body = parsed
        except ValueError:
            pass
        message = body.get("message") or response.text or f"HTTP {response.status_code}"
        logger.error(f"Store error during {context}: {response.status_code} {message}")
        raise StoreError(
            message,
            code=body.get("code"),
            hint=body.get("hint"),
            details=body.get("details"),
            status=response.status_code
        )

    @staticmethod
    def _parse_json(response: httpx.Response, context: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Unreadable response during {context}: {e}")
            raise StoreError(
                f"Invalid response from the database service: {e}",
                code=INVALID_RESPONSE, status=response.status_code
            )

    async def _send(self, method: str, table: str, context: str,
                    params: Optional[Dict[str, str]] = None, json: Any = None,
                    prefer: Optional[str] = None) -> httpx.Response:
        headers = {"Prefer": prefer} if prefer else {}
        try:
            async with self._client() as client:
                response = await client.request(method, f"/{table}", params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Network error during {context}: {e}")
            raise StoreError(f"Network error: {e}", code="network")
        self._raise_for_error(response, context)
        return response

    async def get(self, table: str, filters: Optional[Dict[str, Any]] = None,
                  order_by: Optional[str] = None, descending: bool = False) -> List[Dict[str, Any]]:
        params = {"select": "*", **self._filter_params(filters)}
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        response = await self._send("GET", table, f"get {table}", params=params)
        return self._parse_json(response, f"get {table}")

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._send(
            "POST", table, f"insert into {table}", json=row, prefer="return=representation"
        )
        rows = self._parse_json(response, f"insert into {table}")
        return rows[0] if isinstance(rows, list) else rows

    async def update(self, table: str, record_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._send(
            "PATCH", table, f"update {table}", params={"id": f"eq.{record_id}"},
            json=patch, prefer="return=representation"
        )
        rows = self._parse_json(response, f"update {table}")
        if not rows:
            raise StoreError(
                "JSON object requested, multiple (or no) rows returned",
                code=NO_ROWS, details=f"No row in {table} with id {record_id}", status=response.status_code
            )
        return rows[0]

    async def delete(self, table: str, record_id: str) -> bool:
        await self._send("DELETE", table, f"delete from {table}", params={"id": f"eq.{record_id}"})
        return True

    async def count(self, table: str, filters: Optional[Dict[str, Any]] = None,
                    not_null: Optional[str] = None) -> int:
        params = {"select": "*", **self._filter_params(filters, not_null)}
        response = await self._send("HEAD", table, f"count {table}", params=params, prefer="count=exact")
        content_range = response.headers.get("content-range", "")
        total = content_range.rsplit("/", 1)[-1]
        try:
            return int(total)
        except ValueError:
            logger.warning(f"Unexpected Content-Range '{content_range}' counting {table}")
            return 0

    async def upsert(self, table: str, rows: List[Dict[str, Any]], on_conflict: str,
                     ignore_duplicates: bool = True) -> List[Dict[str, Any]]:
        resolution = "ignore-duplicates" if ignore_duplicates else "merge-duplicates"
        response = await self._send(
            "POST", table, f"upsert into {table}", params={"on_conflict": on_conflict},
            json=rows, prefer=f"resolution={resolution},return=representation"
        )
        return self._parse_json(response, f"upsert into {table}")


def create_crud_store(config: Dict[str, Any]) -> CrudStore:
    """
    Build the configured CRUD store.

    Args:
        config: Complete configuration dictionary

    Returns:
        CrudStore instance
    """
    store_config = config.get("store", {})
    backend = store_config.get("backend", "memory")

    if backend == "supabase":
        logger.info(f"Using Supabase store at {store_config.get('url')}")
        return PostgrestCrudStore(
            store_config.get("url", ""),
            store_config.get("key", ""),
            timeout=float(store_config.get("timeout", 10.0))
        )

    if backend != "memory":
        logger.warning(f"Unknown store backend '{backend}', using in-memory store")
    return InMemoryCrudStore()
