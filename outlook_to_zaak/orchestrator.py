"""Authenticated batch upload of selected mail items to a case."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Dict, Iterable, Optional, Protocol, Sequence

from .backoff import BackoffExecutor
from .content import ContentFetcher
from .credentials import CredentialCache
from .errors import (
    AuthenticationError,
    BatchUploadError,
    OrchestrationError,
    PerItemSubmissionError,
    TranslationError,
    UploadError,
)
from .models import AggregateResult, ItemKind, RunResult, UploadItem
from .status import StatusRegistry
from .translator import IdentifierTranslator

logger = logging.getLogger(__name__)


class RunState(str, enum.Enum):
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    TRANSLATING = "translating"
    UPLOADING = "uploading"
    SETTLED = "settled"


class DocumentSubmitter(Protocol):
    async def submit_document(self, item: UploadItem) -> Dict[str, Any]:
        ...


def translation_ids(items: Sequence[UploadItem]) -> list[str]:
    """Message ids first, then attachment ids, without duplicates."""
    message_ids = [item.local_id for item in items if item.kind is ItemKind.EMAIL]
    attachments = [item for item in items if item.kind is ItemKind.ATTACHMENT]
    message_ids += [item.parent_local_id for item in attachments if item.parent_local_id]
    if attachments and not message_ids:
        raise TranslationError(
            "Attachments were selected without the message they belong to",
            code="missing_parent",
        )
    return list(dict.fromkeys(message_ids + [item.local_id for item in attachments]))


class UploadOrchestrator:
    """Upload a batch of items to the case system.

    A run authenticates, translates all Outlook ids in one call, then fetches
    and submits every item concurrently. Failures of single items are kept in
    the StatusRegistry and summarised as one BatchUploadError; authentication
    and translation failures end the run before any upload starts.
    """

    def __init__(
        self,
        credentials: CredentialCache,
        translator: IdentifierTranslator,
        fetcher: ContentFetcher,
        submitter: DocumentSubmitter,
        executor: Optional[BackoffExecutor] = None,
        registry: Optional[StatusRegistry] = None,
    ) -> None:
        self.credentials = credentials
        self.translator = translator
        self.fetcher = fetcher
        self.submitter = submitter
        self.executor = executor or BackoffExecutor()
        self.registry = registry or StatusRegistry()
        self.state = RunState.IDLE
        self._selected_ids: list[str] = []
        self._generation = 0

    def snapshot(self) -> AggregateResult:
        return self.registry.snapshot(self._selected_ids)

    def reset(self) -> None:
        """Forget the current batch; running network calls are left to finish unobserved."""
        self._generation += 1
        self.registry.reset()
        self.credentials.clear()
        self.executor.reset()
        self._selected_ids = []
        self.state = RunState.IDLE

    async def run(self, selected_items: Iterable[UploadItem]) -> RunResult:
        items = list(selected_items)
        if not items:
            logger.debug("Nothing selected, skipping upload")
            return RunResult()

        generation = self._generation
        selected_ids = [item.local_id for item in items]
        self._selected_ids = selected_ids
        logger.info("Starting upload of %s item(s)", len(items))

        try:
            self._enter(generation, RunState.AUTHENTICATING)
            await self.credentials.get_token()

            self._enter(generation, RunState.TRANSLATING)
            await self._translate(items)

            self._enter(generation, RunState.UPLOADING)
            outcomes = await asyncio.gather(
                *(self._upload_item(item, generation) for item in items)
            )
        except (AuthenticationError, TranslationError) as exc:
            self._enter(generation, RunState.SETTLED)
            logger.error("Upload run aborted during %s: %s", exc.kind.value, exc.message)
            return RunResult(error=exc, summary=self._summary(generation, selected_ids))
        except Exception as exc:
            self._enter(generation, RunState.SETTLED)
            logger.exception("Upload run failed unexpectedly")
            error = OrchestrationError(f"Upload run failed: {exc}", code="unexpected")
            error.__cause__ = exc
            return RunResult(error=error, summary=self._summary(generation, selected_ids))

        self._enter(generation, RunState.SETTLED)
        failed = outcomes.count(False)
        summary = self._summary(generation, selected_ids)
        logger.info(
            "Run complete: uploaded=%s failed=%s", len(outcomes) - failed, failed
        )
        if failed:
            return RunResult(error=BatchUploadError(failed), summary=summary)
        return RunResult(summary=summary)

    async def _translate(self, items: Sequence[UploadItem]) -> None:
        ids = translation_ids(items)
        translated = await self.translator.translate(ids)
        remote_ids = dict(zip(ids, translated))

        message_id = next((item.local_id for item in items if item.is_email), None)
        for item in items:
            if item.kind is ItemKind.EMAIL:
                item.remote_id = remote_ids.get(item.local_id)
                item.parent_remote_id = None
            elif item.kind is ItemKind.ATTACHMENT:
                item.remote_id = remote_ids.get(item.local_id)
                item.parent_remote_id = remote_ids.get(item.parent_local_id or message_id)

    async def _upload_item(self, item: UploadItem, generation: int) -> bool:
        self._record(generation, self.registry.record_pending, item.local_id, item.kind)
        try:
            item.content = await self.executor.execute(lambda: self.fetcher.fetch(item))
            await self.executor.execute(lambda: self.submitter.submit_document(item))
        except Exception as exc:
            error = self._item_error(item, exc)
            logger.error("Upload of %s '%s' failed: %s", item.kind.value, item.name or item.local_id, error.message)
            self._record(generation, self.registry.record_error, item.local_id, error)
            return False
        self._record(generation, self.registry.record_success, item.local_id)
        return True

    def _record(self, generation: int, transition, *args) -> None:
        if generation == self._generation:
            transition(*args)

    def _enter(self, generation: int, state: RunState) -> None:
        if generation == self._generation:
            self.state = state

    def _summary(self, generation: int, selected_ids: Sequence[str]) -> AggregateResult:
        # A run abandoned by reset() no longer owns the registry.
        if generation != self._generation:
            return AggregateResult()
        return self.registry.snapshot(selected_ids)

    @staticmethod
    def _item_error(item: UploadItem, exc: Exception) -> PerItemSubmissionError:
        if isinstance(exc, PerItemSubmissionError):
            return exc
        if isinstance(exc, UploadError):
            error = PerItemSubmissionError(
                item.local_id, exc.message, code=exc.code, status_code=exc.status_code, details=exc.details
            )
        else:
            error = PerItemSubmissionError(item.local_id, str(exc) or exc.__class__.__name__)
        error.__cause__ = exc
        return error
