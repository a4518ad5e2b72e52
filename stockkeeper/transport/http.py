"""
HttpTransport - Async client for the inventory backend web API.

Every endpoint answers with a ``{success, data, message}`` envelope. Any
failure (HTTP status, ``success: false``, network, timeout) surfaces as a
TransportError whose message is the backend's text.
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from stockkeeper.transport.base import BaseTransport, TransportError


class HttpTransport(BaseTransport):
    """
    Transport for one collection served under ``{base_url}/api/{resource}``.

    Usage:
        async with HttpTransport("materiaPrima", "http://localhost:3001") as t:
            materials = await t.list({"categoria": "Pinturas"})
    """

    def __init__(
        self,
        resource: str,
        base_url: str,
        timeout: float = 15.0,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._resource = resource
        self._base_url = f"{base_url.rstrip('/')}/api/{resource}"
        self._timeout = timeout
        self._headers = headers or {}
        # HTTP client (lazy initialization)
        self._http_client: httpx.AsyncClient | None = client

    @property
    def resource(self) -> str:
        return self._resource

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                headers=self._headers,
                follow_redirects=True,
            )
        return self._http_client

    async def list(
        self, filters: dict[str, Any] | None = None, include_inactive: bool = False
    ) -> list[dict[str, Any]]:
        body = {**(filters or {}), "includeInactive": include_inactive}
        return await self._request("POST", "/listar", json_data=body)

    async def get(self, id: str, include_inactive: bool = False) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"/detalles/{id}",
            params={"includeInactive": str(include_inactive).lower()},
        )

    async def create(
        self, data: dict[str, Any], actor_id: str | None = None
    ) -> dict[str, Any]:
        return await self._request(
            "POST", "/crear", json_data=_with_actor(data, actor_id)
        )

    async def update(
        self, id: str, data: dict[str, Any], actor_id: str | None = None
    ) -> dict[str, Any]:
        return await self._request(
            "PUT", f"/actualizar/{id}", json_data=_with_actor(data, actor_id)
        )

    async def delete(self, id: str, actor_id: str | None = None) -> bool:
        params = {"usuarioId": actor_id} if actor_id else None
        await self._request("DELETE", f"/eliminar/{id}", params=params)
        return True

    async def search(self, term: str, limit: int = 50) -> list[dict[str, Any]]:
        return await self._request(
            "POST", "/listar", json_data={"search": term, "limit": limit}
        )

    async def low_stock(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/stock-bajo")

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        """Execute the request and unwrap the response envelope."""
        client = await self._get_http_client()
        url = f"{self._base_url}{path}"

        try:
            response = await client.request(
                method=method,
                url=url,
                params=params,
                json=json_data,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            raise TransportError(
                f"timeout after {self._timeout}s calling {method} {path}",
                self._resource,
            ) from e
        except httpx.RequestError as e:
            raise TransportError(f"connection error: {e}", self._resource) from e

        payload = _json_or_none(response)

        if response.is_error:
            message = _message(payload) or f"HTTP {response.status_code}: {response.text[:200]}"
            logger.warning(f"[HttpTransport] {method} {path} -> {response.status_code}: {message}")
            raise TransportError(message, self._resource)

        if not isinstance(payload, dict):
            raise TransportError(
                f"invalid format in response from {method} {path}", self._resource
            )

        if not payload.get("success", False):
            raise TransportError(
                _message(payload) or f"Error en {method} {path}", self._resource
            )

        return payload.get("data")

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug(f"HttpTransport[{self._resource}] closed")

    async def __aenter__(self) -> "HttpTransport":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()


def _with_actor(data: dict[str, Any], actor_id: str | None) -> dict[str, Any]:
    if actor_id is None:
        return data
    return {**data, "usuarioId": actor_id}


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _message(payload: Any) -> str | None:
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error")
        if isinstance(message, str) and message:
            return message
    return None
