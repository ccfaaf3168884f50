"""Row-oriented client for the hosted table API.

The platform exposes each table over a PostgREST-style endpoint
(``/rest/v1/<table>``). Only the handful of verbs the flow runtime needs are
wrapped here: filtered reads, by-id reads, ``in`` reads for joining children
to parents, and single-row inserts for watch time and leads. Nothing is
retried; callers surface failures to the viewer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Protocol, Sequence

import httpx

from smartflow_server.store.http import ConnectivityProbe, HTTPClient

_log = logging.getLogger(__name__)

REST_PREFIX = "/rest/v1"

Row = Dict[str, Any]


class EntityStoreError(RuntimeError):
    """Transport, status or decoding failure while talking to the table API."""

    def __init__(self, message: str, *, table: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.table = table
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class Order:
    column: str
    ascending: bool = True

    def render(self) -> str:
        return f"{self.column}.{'asc' if self.ascending else 'desc'}"


class EntityStore(Protocol):
    async def fetch(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order: Order | Sequence[Order] | None = None,
        *,
        select: str = "*",
    ) -> List[Row]: ...

    async def fetch_by_id(self, table: str, row_id: Any, *, select: str = "*") -> Row | None: ...

    async def fetch_in(
        self,
        table: str,
        column: str,
        values: Iterable[Any],
        order: Order | Sequence[Order] | None = None,
        *,
        select: str = "*",
    ) -> List[Row]: ...

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row: ...

    async def check_ready(self) -> ConnectivityProbe: ...

    async def close(self) -> None: ...


def _render_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _render_filter(value: Any) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"is.{_render_scalar(value)}"
    return f"eq.{_render_scalar(value)}"


def _render_in(values: Iterable[Any]) -> str:
    quoted = []
    for value in values:
        text = _render_scalar(value).replace('"', '\\"')
        quoted.append(f'"{text}"')
    return f"in.({','.join(quoted)})"


def _render_order(order: Order | Sequence[Order] | None) -> str | None:
    if order is None:
        return None
    if isinstance(order, Order):
        return order.render()
    parts = [o.render() for o in order]
    return ",".join(parts) or None


class RestEntityStore:
    """``EntityStore`` backed by the hosted PostgREST endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers: Dict[str, str] = {}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self._http = HTTPClient(base_url, timeout=timeout, headers=headers, transport=transport)

    @property
    def base_url(self) -> str:
        return self._http.base_url

    def _path(self, table: str) -> str:
        if not table or "/" in table:
            raise ValueError(f"invalid table name: {table!r}")
        return f"{REST_PREFIX}/{table}"

    async def _get_rows(self, table: str, params: List[tuple[str, str]]) -> List[Row]:
        path = self._path(table)
        try:
            payload = await self._http.send_json("GET", path, params=params)
        except httpx.HTTPStatusError as exc:
            raise EntityStoreError(
                f"{table}: store responded {exc.response.status_code}",
                table=table,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise EntityStoreError(f"{table}: store unreachable ({exc})", table=table) from exc
        except ValueError as exc:
            raise EntityStoreError(f"{table}: response is not valid JSON", table=table) from exc
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise EntityStoreError(f"{table}: expected a list of rows", table=table)
        return payload

    async def fetch(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order: Order | Sequence[Order] | None = None,
        *,
        select: str = "*",
    ) -> List[Row]:
        params: List[tuple[str, str]] = [("select", select)]
        for column, value in (filters or {}).items():
            params.append((column, _render_filter(value)))
        rendered = _render_order(order)
        if rendered:
            params.append(("order", rendered))
        rows = await self._get_rows(table, params)
        _log.debug("fetched %d row(s) from %s filters=%s", len(rows), table, dict(filters or {}))
        return rows

    async def fetch_by_id(self, table: str, row_id: Any, *, select: str = "*") -> Row | None:
        params = [("select", select), ("id", _render_filter(row_id)), ("limit", "1")]
        rows = await self._get_rows(table, params)
        return rows[0] if rows else None

    async def fetch_in(
        self,
        table: str,
        column: str,
        values: Iterable[Any],
        order: Order | Sequence[Order] | None = None,
        *,
        select: str = "*",
    ) -> List[Row]:
        wanted = list(dict.fromkeys(values))
        if not wanted:
            return []
        params: List[tuple[str, str]] = [("select", select), (column, _render_in(wanted))]
        rendered = _render_order(order)
        if rendered:
            params.append(("order", rendered))
        return await self._get_rows(table, params)

    async def insert(self, table: str, row: Mapping[str, Any]) -> Row:
        path = self._path(table)
        try:
            payload = await self._http.send_json(
                "POST",
                path,
                json=dict(row),
                headers={"Prefer": "return=representation"},
            )
        except httpx.HTTPStatusError as exc:
            raise EntityStoreError(
                f"{table}: insert rejected ({exc.response.status_code})",
                table=table,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise EntityStoreError(f"{table}: store unreachable ({exc})", table=table) from exc
        except ValueError as exc:
            raise EntityStoreError(f"{table}: response is not valid JSON", table=table) from exc
        if isinstance(payload, list):
            return payload[0] if payload else dict(row)
        if isinstance(payload, dict):
            return payload
        return dict(row)

    async def check_ready(self) -> ConnectivityProbe:
        return await self._http.check_ready(f"{REST_PREFIX}/")

    async def close(self) -> None:
        await self._http.close()
