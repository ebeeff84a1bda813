"""Case-management (zaak) document uploader."""

from __future__ import annotations

import base64
import logging
from datetime import UTC, datetime
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from .credentials import CredentialCache
from .errors import ClientRequestError, error_from_response, error_from_transport
from .models import UploadItem

logger = logging.getLogger(__name__)


def _creation_date(value: Optional[datetime]) -> str:
    if value is None:
        return datetime.now(tz=UTC).date().isoformat()
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.date().isoformat()


def build_document_payload(item: UploadItem) -> Dict[str, Any]:
    """Translate an item with fetched content into the documenten request body."""
    if item.content is None:
        raise ClientRequestError(f"No content fetched for {item.local_id}", code="missing_content")
    metadata = item.metadata
    return {
        "inhoud": base64.b64encode(item.content).decode("ascii"),
        "titel": metadata.title or item.name,
        "bestandsnaam": item.name,
        "formaat": item.content_type,
        "vertrouwelijkheidaanduiding": metadata.confidentiality,
        "informatieobjecttype": metadata.document_type,
        "status": metadata.status,
        "creatiedatum": _creation_date(metadata.created),
        "auteur": metadata.author,
    }


class CaseClient:
    """Submit documents to a case in the case-management backend."""

    def __init__(
        self,
        base_url: str,
        credentials: CredentialCache,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "CaseClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def submit_document(self, item: UploadItem) -> Dict[str, Any]:
        """Upload one document and return the created document record."""
        case_id = item.metadata.case_id
        if not case_id:
            raise ClientRequestError(f"No case given for {item.local_id}", code="missing_case")

        url = f"{self.base_url}/zaken/{quote(case_id, safe='')}/documenten"
        payload = build_document_payload(item)
        token = await self.credentials.get_token()
        headers = {"Authorization": f"Bearer {token}"}

        logger.info("Uploading '%s' to case %s", payload["titel"], case_id)
        try:
            response = await self._client.post(url, headers=headers, json=payload)
        except httpx.TransportError as exc:
            logger.error("Case upload for %s failed: %s", item.local_id, exc)
            raise error_from_transport(exc, f"POST {url}") from exc

        if response.status_code >= 400:
            logger.error("Case upload failed (%s): %s", response.status_code, response.text)
            raise error_from_response(response, f"Upload of '{payload['titel']}'")

        return self._parse_response_body(response)

    @staticmethod
    def _parse_response_body(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {"raw": response.text}
        return body if isinstance(body, dict) else {"raw": body}
