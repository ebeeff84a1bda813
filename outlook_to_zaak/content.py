"""Content fetchers: Graph-backed mail items and slice-read office documents."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol

from .errors import ClientRequestError, ContentTooLargeError, PerItemSubmissionError
from .models import ItemKind, UploadItem

logger = logging.getLogger(__name__)

# 60MB raw is roughly 80MB once base64 encoded, the gateway's body limit.
MAX_RAW_CONTENT_BYTES = 60 * 1024 * 1024


def ensure_size(content: bytes, limit: int = MAX_RAW_CONTENT_BYTES) -> bytes:
    if len(content) > limit:
        raise ContentTooLargeError(len(content), limit)
    return content


class ContentFetcher(Protocol):
    async def fetch(self, item: UploadItem) -> bytes:
        ...


class MailDownloader(Protocol):
    async def download_message(self, message_id: str) -> bytes:
        ...

    async def download_attachment(self, message_id: str, attachment_id: str) -> bytes:
        ...


class GraphContentFetcher:
    """Fetch e-mails as EML and attachments as raw bytes through Graph."""

    def __init__(self, graph: MailDownloader, max_bytes: int = MAX_RAW_CONTENT_BYTES) -> None:
        self.graph = graph
        self.max_bytes = max_bytes

    async def fetch(self, item: UploadItem) -> bytes:
        if item.remote_id is None:
            raise PerItemSubmissionError(
                item.local_id, f"No Graph id for '{item.name or item.local_id}'", code="untranslated"
            )
        if item.kind is ItemKind.EMAIL:
            content = await self.graph.download_message(item.remote_id)
        elif item.kind is ItemKind.ATTACHMENT:
            if item.parent_remote_id is None:
                raise PerItemSubmissionError(
                    item.local_id,
                    f"No Graph id for the message of attachment '{item.name or item.local_id}'",
                    code="untranslated_parent",
                )
            content = await self.graph.download_attachment(item.parent_remote_id, item.remote_id)
        else:
            raise PerItemSubmissionError(
                item.local_id, f"Graph cannot fetch {item.kind.value} items", code="unsupported_kind"
            )
        logger.debug("Fetched %s bytes for %s %s", len(content), item.kind.value, item.local_id)
        return ensure_size(content, self.max_bytes)


class SliceReader(Protocol):
    """An open host document that hands out its bytes slice by slice."""

    slice_count: int

    async def get_slice(self, index: int) -> bytes:
        ...

    async def close(self) -> None:
        ...


@asynccontextmanager
async def open_document(opener: Callable[[], Awaitable[SliceReader]]) -> AsyncIterator[SliceReader]:
    """Open a document and close it again on every exit path."""
    reader = await opener()
    try:
        yield reader
    finally:
        try:
            await reader.close()
        except Exception:
            logger.warning("Unable to close document", exc_info=True)


async def iter_slices(reader: SliceReader) -> AsyncIterator[bytes]:
    """Yield slices strictly in order."""
    for index in range(reader.slice_count):
        data = await reader.get_slice(index)
        if not data:
            raise ClientRequestError(f"No data in slice {index}", code="empty_slice")
        yield data


async def read_document(
    opener: Callable[[], Awaitable[SliceReader]], max_bytes: int = MAX_RAW_CONTENT_BYTES
) -> bytes:
    chunks: list[bytes] = []
    size = 0
    async with open_document(opener) as reader:
        async for data in iter_slices(reader):
            size += len(data)
            if size > max_bytes:
                raise ContentTooLargeError(size, max_bytes)
            chunks.append(data)
    return b"".join(chunks)


class OfficeDocumentFetcher:
    """Fetch the document currently open in the host application."""

    def __init__(
        self,
        opener: Callable[[], Awaitable[SliceReader]],
        fallback: Optional[ContentFetcher] = None,
        max_bytes: int = MAX_RAW_CONTENT_BYTES,
    ) -> None:
        self.opener = opener
        self.fallback = fallback
        self.max_bytes = max_bytes

    async def fetch(self, item: UploadItem) -> bytes:
        if item.kind is not ItemKind.DOCUMENT:
            if self.fallback is None:
                raise PerItemSubmissionError(
                    item.local_id, f"Cannot fetch {item.kind.value} items", code="unsupported_kind"
                )
            return await self.fallback.fetch(item)
        return await read_document(self.opener, self.max_bytes)
