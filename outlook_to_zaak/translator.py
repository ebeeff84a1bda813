"""Batched translation of Outlook (EWS) item ids into Graph REST ids."""

from __future__ import annotations

import logging
from typing import Any, Literal, Optional, Protocol, Sequence

from .errors import TranslationError, UploadError

logger = logging.getLogger(__name__)

TRANSLATE_ENDPOINT = "/me/translateExchangeIds"


class JsonPoster(Protocol):
    async def post_json(self, endpoint: str, payload: dict[str, Any]) -> Any:
        ...


class IdentifierTranslator:
    """Translate a batch of local ids with one Graph round trip.

    The result is positional: element ``i`` belongs to ``local_ids[i]`` and is
    ``None`` when Graph could not translate that id.
    """

    def __init__(
        self,
        graph: JsonPoster,
        source_id_type: Literal["ewsId", "entryId", "immutableEntryId"] = "ewsId",
        target_id_type: Literal["restId", "restImmutableEntryId"] = "restId",
    ) -> None:
        self.graph = graph
        self.source_id_type = source_id_type
        self.target_id_type = target_id_type

    async def translate(self, local_ids: Sequence[str]) -> list[Optional[str]]:
        ids = list(local_ids)
        if not ids:
            return []

        payload = {
            "inputIds": ids,
            "sourceIdType": self.source_id_type,
            "targetIdType": self.target_id_type,
        }
        logger.debug("Translating %s ids from %s to %s", len(ids), self.source_id_type, self.target_id_type)
        try:
            result = await self.graph.post_json(TRANSLATE_ENDPOINT, payload)
        except UploadError as exc:
            raise TranslationError(
                f"Identifier translation failed: {exc.message}",
                code=exc.code,
                status_code=exc.status_code,
            ) from exc
        except ValueError as exc:
            raise TranslationError(
                "Identifier translation returned invalid JSON", code="malformed_response"
            ) from exc

        values = result.get("value") if isinstance(result, dict) else None
        if not isinstance(values, list) or len(values) != len(ids):
            raise TranslationError(
                "Identifier translation returned an unexpected body",
                code="malformed_response",
                details={"expected": len(ids), "response": result},
            )

        translated = [self._target_id(entry) for entry in values]
        missing = sum(1 for value in translated if value is None)
        if missing:
            logger.warning("%s of %s ids could not be translated", missing, len(ids))
        return translated

    @staticmethod
    def _target_id(entry: Any) -> Optional[str]:
        if not isinstance(entry, dict):
            return None
        return entry.get("targetId") or None
