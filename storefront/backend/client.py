# storefront/backend/client.py
import logging
from typing import Any, Optional

import httpx

from storefront.errors import BackendError

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"Backend returned HTTP {response.status_code}"
    if isinstance(payload, dict):
        for key in ("message", "msg", "error_description", "error"):
            if payload.get(key):
                return str(payload[key])
    return f"Backend returned HTTP {response.status_code}"


class BackendClient:
    """Thin HTTPS client for the hosted data/auth service.

    Table reads go to ``/rest/v1/<table>``, auth calls to ``/auth/v1/...``.
    Every request carries the project ``apikey``; user calls add the
    session bearer token.
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.anon_key = anon_key
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={"apikey": anon_key, "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        json: Any = None,
        token: Optional[str] = None,
        headers: Optional[dict] = None,
    ) -> Any:
        request_headers = {"Authorization": f"Bearer {token or self.anon_key}"}
        if headers:
            request_headers.update(headers)

        logger.debug("%s %s params=%s", method, path, params)
        try:
            response = await self._http.request(
                method, path, params=params, json=json, headers=request_headers
            )
        except httpx.HTTPError as e:
            logger.warning("Backend unreachable: %s %s: %s", method, path, e)
            raise BackendError(f"Backend unreachable: {e}") from e

        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning("Backend error %s on %s %s: %s", response.status_code, method, path, message)
            raise BackendError(message, status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def select(self, table: str, params: dict, token: Optional[str] = None) -> list:
        rows = await self.request("GET", f"/rest/v1/{table}", params=params, token=token)
        return rows or []

    async def rpc(self, function: str, payload: dict, token: Optional[str] = None) -> Any:
        return await self.request("POST", f"/rest/v1/rpc/{function}", json=payload, token=token)

    async def aclose(self) -> None:
        await self._http.aclose()
