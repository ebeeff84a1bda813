"""Microsoft Graph helper focused on identifier translation and content download."""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from .credentials import CredentialCache
from .errors import error_from_response, error_from_transport

logger = logging.getLogger(__name__)


class GraphClient:
    """Thin async wrapper that authenticates every Graph call with the CredentialCache."""

    GRAPH_BASE = "https://graph.microsoft.com/v1.0"

    def __init__(
        self,
        credentials: CredentialCache,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = GRAPH_BASE,
        timeout: float = 30.0,
    ) -> None:
        self.credentials = credentials
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "GraphClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def post_json(self, endpoint: str, payload: dict[str, Any]) -> Any:
        response = await self._request("POST", endpoint, json=payload)
        return response.json()

    async def download_message(self, message_id: str) -> bytes:
        """Download the full message as MIME (EML) bytes."""
        endpoint = f"/me/messages/{quote(message_id, safe='')}/$value"
        response = await self._request("GET", endpoint)
        return response.content

    async def download_attachment(self, message_id: str, attachment_id: str) -> bytes:
        """Download attachment bytes."""
        endpoint = (
            f"/me/messages/{quote(message_id, safe='')}"
            f"/attachments/{quote(attachment_id, safe='')}/$value"
        )
        response = await self._request("GET", endpoint)
        return response.content

    async def _request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        token = await self.credentials.get_token()
        headers = {"Authorization": f"Bearer {token}"}
        url = f"{self.base_url}{endpoint}"
        logger.debug("Graph %s %s", method, endpoint)
        try:
            resp = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as exc:
            logger.error("Graph request %s %s failed: %s", method, endpoint, exc)
            raise error_from_transport(exc, f"Graph {method} {endpoint}") from exc
        if resp.status_code >= 400:
            logger.error("Graph request failed (%s): %s", resp.status_code, resp.text)
            if resp.status_code == 401:
                # The cached token was refused; force a fresh acquisition next time.
                self.credentials.clear()
            raise error_from_response(resp, f"Graph {method} {endpoint}")
        return resp
