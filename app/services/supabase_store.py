"""CacheStore backed by Supabase's PostgREST API."""

from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from app.services.cache_store import CacheStore, StoreAccessError
from app.utils.logger import logger


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _filter_params(filters: Dict[str, Any]) -> Dict[str, str]:
    return {column: f"eq.{value}" for column, value in filters.items()}


class SupabaseCacheStore(CacheStore):
    """
    Talks to {supabase_url}/rest/v1/<table> with the service role key.

    The httpx client is created lazily and reused; pass one in to share a
    connection pool or to substitute a transport in tests.
    """

    def __init__(
        self,
        supabase_url: str,
        service_role_key: str,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not supabase_url or not service_role_key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required when CACHE_BACKEND=supabase"
            )
        self._rest_url = f"{supabase_url.rstrip('/')}/rest/v1"
        self._headers = {
            "apikey": service_role_key,
            "Authorization": f"Bearer {service_role_key}",
            "Content-Type": "application/json",
        }
        self._timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def _request(
        self,
        operation: str,
        table: str,
        method: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> httpx.Response:
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer

        try:
            resp = await self._get_client().request(
                method,
                f"{self._rest_url}/{table}",
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise StoreAccessError(operation, table, exc) from exc

        if resp.status_code >= 300:
            logger.debug(f"[supabase] {method} {table} -> {resp.status_code}: {resp.text[:200]}")
            raise StoreAccessError(operation, table, f"HTTP {resp.status_code}: {resp.text[:200]}")
        return resp

    async def select(self, table, filters, order_by=None, descending=False, limit=None):
        params = {"select": "*", **_filter_params(filters)}
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        if limit:
            params["limit"] = str(limit)

        resp = await self._request("select", table, "GET", params=params)
        try:
            return resp.json()
        except ValueError as exc:
            raise StoreAccessError("select", table, exc) from exc

    async def delete(self, table, filters):
        await self._request("delete", table, "DELETE", params=_filter_params(filters), prefer="return=minimal")

    async def insert(self, table, rows):
        if not rows:
            return
        payload = [{k: _encode(v) for k, v in row.items()} for row in rows]
        await self._request("insert", table, "POST", json=payload, prefer="return=minimal")

    async def upsert(self, table, row, on_conflict):
        payload = {k: _encode(v) for k, v in row.items()}
        await self._request(
            "upsert",
            table,
            "POST",
            params={"on_conflict": ",".join(on_conflict)},
            json=payload,
            prefer="resolution=merge-duplicates,return=minimal",
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
