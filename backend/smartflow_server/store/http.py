from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from smartflow_server import __version__

# Flow loads fan out into several parallel reads; a slow connect should fail
# fast rather than hold the whole gather.
_CONNECT_TIMEOUT_S = 5.0
_BASE_HEADERS: Mapping[str, str] = {
    "User-Agent": f"smartflow-server/{__version__}",
    "Accept": "application/json",
}
_ERROR_BODY_LIMIT = 200


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


@dataclass(slots=True)
class ConnectivityProbe:
    ok: bool
    status: str
    status_code: int | None = None
    error: str | None = None
    latency_ms: float | None = None

    @classmethod
    def from_response(cls, response: httpx.Response, latency_ms: float) -> "ConnectivityProbe":
        code = response.status_code
        if code < 400:
            return cls(True, "ready", code, None, latency_ms)
        body = response.text
        if len(body) > _ERROR_BODY_LIMIT:
            body = body[: _ERROR_BODY_LIMIT - 3] + "..."
        return cls(False, f"status-{code}", code, body, latency_ms)

    def describe(self) -> str:
        parts = [self.status]
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        if self.latency_ms is not None:
            parts.append(f"{self.latency_ms:.1f}ms")
        if self.error:
            parts.append(f"error={self.error}")
        return "; ".join(parts)


class HTTPClient:
    """One ``httpx.AsyncClient`` per store, opened on first use.

    ``transport`` goes straight to httpx so tests can plug in
    ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float | None = None,
        headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self._base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout or 15.0, connect=_CONNECT_TIMEOUT_S)
        self._headers = {**_BASE_HEADERS, **(headers or {})}
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._open_lock = asyncio.Lock()

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _session(self) -> httpx.AsyncClient:
        async with self._open_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self._base_url,
                    timeout=self._timeout,
                    headers=self._headers,
                    transport=self._transport,
                )
            return self._client

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    async def send_json(
        self,
        method: str,
        path: str,
        *,
        params: Any = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """Send one request and decode its JSON body.

        Raises ``httpx.HTTPStatusError`` for 4xx/5xx, ``httpx.RequestError``
        for transport failures and ``ValueError`` for an undecodable body.
        Empty bodies decode to ``None``.
        """
        client = await self._session()
        response = await client.request(method, path, params=params, json=json, headers=headers)
        response.raise_for_status()
        if not response.content:
            return None
        return response.json()

    async def check_ready(self, path: str) -> ConnectivityProbe:
        start = time.perf_counter()
        client = await self._session()
        try:
            response = await client.get(path)
        except httpx.RequestError as exc:
            return ConnectivityProbe(False, "network-error", None, str(exc), _elapsed_ms(start))
        return ConnectivityProbe.from_response(response, _elapsed_ms(start))
