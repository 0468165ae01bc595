# src/offline_tasks/sync/remote_store.py

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from ..core.errors import RemoteTransientError
from .models import RemoteTable

logger = logging.getLogger(__name__)


def _encode_value(value: Any) -> str:
    # PostgREST filter literals: booleans are lowercase, None is "null".
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _filter_params(filters: Mapping[str, Any] | None) -> dict[str, str]:
    if not filters:
        return {}
    return {column: f"eq.{_encode_value(value)}" for column, value in filters.items()}


def _make_timeout(timeout_s: float) -> httpx.Timeout:
    return httpx.Timeout(
        connect=min(5.0, timeout_s),
        read=timeout_s,
        write=timeout_s,
        pool=min(5.0, timeout_s),
    )


class PostgrestRemoteStore:
    """
    RemoteStore over a PostgREST endpoint (Supabase `/rest/v1`).

    The client is constructed explicitly and owned by whoever created it
    (bootstrap); call aclose() on shutdown. Every httpx failure (transport
    error or non-2xx status) is raised as RemoteTransientError.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        base = base_url.strip().rstrip("/")
        if not base:
            raise ValueError("base_url is required")
        if not base.endswith("/rest/v1"):
            base = f"{base}/rest/v1"

        headers = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"

        self._base_url = base
        self._client = httpx.AsyncClient(
            base_url=base,
            headers=headers,
            timeout=_make_timeout(float(timeout_s)),
            transport=transport,
        )
        logger.info("PostgrestRemoteStore ready base_url=%s", base)

    @classmethod
    def from_settings(cls, settings) -> "PostgrestRemoteStore":
        return cls(
            settings.remote_url,
            settings.remote_api_key,
            timeout_s=float(getattr(settings, "remote_timeout_seconds", 10.0)),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "PostgrestRemoteStore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ---- low-level helpers ----

    async def _request(
        self,
        method: str,
        table: RemoteTable,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        try:
            resp = await self._client.request(
                method,
                f"/{table.value}",
                params=params,
                json=json,
                headers=headers,
            )
            resp.raise_for_status()
            return resp
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            snippet = e.response.text[:240].strip()
            raise RemoteTransientError(
                f"{method} {table.value} failed: HTTP {status} {snippet}".strip(),
                status_code=status,
            ) from e
        except httpx.HTTPError as e:
            raise RemoteTransientError(f"{method} {table.value} failed: {e!r}") from e

    @staticmethod
    def _json_rows(resp: httpx.Response, table: RemoteTable) -> list[dict[str, Any]]:
        try:
            payload = resp.json()
        except ValueError as e:
            raise RemoteTransientError(f"{table.value}: non-JSON response") from e
        if isinstance(payload, dict):
            payload = [payload]
        if not isinstance(payload, list):
            raise RemoteTransientError(
                f"{table.value}: unexpected JSON type {type(payload).__name__}"
            )
        return [row for row in payload if isinstance(row, dict)]

    @staticmethod
    def _require_filters(filters: Mapping[str, Any], op: str) -> dict[str, str]:
        params = _filter_params(filters)
        if not params:
            # An unfiltered PATCH/DELETE would touch every row in the table.
            raise ValueError(f"{op} requires at least one filter")
        return params

    # ---- RemoteStore ----

    async def select(
        self,
        table: RemoteTable,
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
    ) -> list[dict[str, Any]]:
        params = {"select": "*", **_filter_params(filters)}
        if order_by:
            params["order"] = f"{order_by}.asc"
        resp = await self._request("GET", table, params=params)
        rows = self._json_rows(resp, table)
        logger.debug("select %s filters=%s -> %d rows", table.value, filters, len(rows))
        return rows

    async def insert(self, table: RemoteTable, row: Mapping[str, Any]) -> dict[str, Any]:
        resp = await self._request(
            "POST",
            table,
            params={"select": "*"},
            json=dict(row),
            headers={"Prefer": "return=representation"},
        )
        rows = self._json_rows(resp, table)
        if not rows:
            raise RemoteTransientError(f"insert into {table.value} returned no row")
        logger.debug("insert %s -> id=%s", table.value, rows[0].get("id"))
        return rows[0]

    async def update(
        self,
        table: RemoteTable,
        filters: Mapping[str, Any],
        values: Mapping[str, Any],
    ) -> None:
        params = self._require_filters(filters, "update")
        await self._request(
            "PATCH",
            table,
            params=params,
            json=dict(values),
            headers={"Prefer": "return=minimal"},
        )
        logger.debug("update %s filters=%s values=%s", table.value, filters, dict(values))

    async def delete(self, table: RemoteTable, filters: Mapping[str, Any]) -> None:
        params = self._require_filters(filters, "delete")
        await self._request("DELETE", table, params=params, headers={"Prefer": "return=minimal"})
        logger.debug("delete %s filters=%s", table.value, filters)
