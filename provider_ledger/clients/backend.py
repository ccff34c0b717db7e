from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from provider_ledger.services.exceptions import DownstreamServiceError

logger = logging.getLogger(__name__)


def _structured_error(response: httpx.Response) -> str | None:
    """Pull the server supplied error message out of an error response body."""

    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        for key in ("error", "message"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


class BackendClient:
    """Async HTTP client responsible for communicating with the provider backend."""

    def __init__(
        self,
        base_url: str | None,
        *,
        timeout: float = 10.0,
        use_mock_data: bool = True,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = str(base_url).rstrip("/") if base_url else None
        self._timeout = timeout
        self.use_mock_data = use_mock_data or not self._base_url
        self._headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        if not self.use_mock_data and self._base_url:
            self._client = self._build_client()

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=self._headers,
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self.use_mock_data or not self._base_url:
            raise RuntimeError("HTTP client requested while running in mock mode")
        if self._client is None:
            self._client = self._build_client()
        return self._client

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Dict[str, Any] | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> Any:
        if self.use_mock_data:
            raise RuntimeError("Real HTTP call requested while mock mode is enabled")
        client = await self._ensure_client()
        try:
            logger.debug("%s %s", method, path)
            response = await client.request(method, path, params=params, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.exception("Provider backend returned error %s", status_code)
            raise DownstreamServiceError(
                f"Provider backend returned an error response ({status_code})",
                status_code=status_code,
                detail=_structured_error(exc.response),
                cause=exc,
            ) from exc
        except httpx.RequestError as exc:
            logger.exception("Unable to reach provider backend: %s", exc)
            raise DownstreamServiceError(
                "Unable to reach provider backend", status_code=None, cause=exc
            ) from exc

        if not response.content:
            return None
        return response.json()

    async def get(self, path: str, params: Dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, payload: Dict[str, Any]) -> Any:
        return await self.request("POST", path, payload=payload)

    async def put(self, path: str, payload: Dict[str, Any]) -> Any:
        return await self.request("PUT", path, payload=payload)

    async def patch(self, path: str, payload: Dict[str, Any] | None = None) -> Any:
        return await self.request("PATCH", path, payload=payload)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    async def simulate_latency(self) -> None:
        """Allow services to await for latency even when mocking responses."""

        await asyncio.sleep(0)
