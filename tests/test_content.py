"""
Tests for the content fetchers.
"""
from unittest.mock import AsyncMock, Mock

import pytest

from outlook_to_zaak.content import (
    GraphContentFetcher,
    OfficeDocumentFetcher,
    read_document,
)
from outlook_to_zaak.errors import (
    ClientRequestError,
    ContentTooLargeError,
    PerItemSubmissionError,
)
from outlook_to_zaak.models import ItemKind, UploadItem


class FakeDocument:
    def __init__(self, slices, fail_at=None):
        self.slices = slices
        self.slice_count = len(slices)
        self.requested = []
        self.closed = False
        self.fail_at = fail_at

    async def get_slice(self, index):
        self.requested.append(index)
        if index == self.fail_at:
            raise ClientRequestError("Unable to get slice")
        return self.slices[index]

    async def close(self):
        self.closed = True


def opener_for(document):
    return AsyncMock(return_value=document)


@pytest.fixture
def graph():
    graph = Mock()
    graph.download_message = AsyncMock(return_value=b"EML")
    graph.download_attachment = AsyncMock(return_value=b"PDF")
    return graph


class TestGraphContentFetcher:
    @pytest.mark.asyncio
    async def test_email_fetched_as_mime(self, graph, email_item):
        email_item.remote_id = "rest-email"

        assert await GraphContentFetcher(graph).fetch(email_item) == b"EML"
        graph.download_message.assert_awaited_once_with("rest-email")

    @pytest.mark.asyncio
    async def test_attachment_fetched_under_parent(self, graph, attachment_items):
        item = attachment_items[0]
        item.remote_id = "rest-att"
        item.parent_remote_id = "rest-email"

        assert await GraphContentFetcher(graph).fetch(item) == b"PDF"
        graph.download_attachment.assert_awaited_once_with("rest-email", "rest-att")

    @pytest.mark.asyncio
    async def test_untranslated_item_fails_individually(self, graph, email_item):
        with pytest.raises(PerItemSubmissionError) as exc_info:
            await GraphContentFetcher(graph).fetch(email_item)

        assert exc_info.value.item_id == "ews-email"
        assert exc_info.value.code == "untranslated"
        graph.download_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_untranslated_parent_fails(self, graph, attachment_items):
        item = attachment_items[0]
        item.remote_id = "rest-att"

        with pytest.raises(PerItemSubmissionError, match="message of attachment"):
            await GraphContentFetcher(graph).fetch(item)

    @pytest.mark.asyncio
    async def test_oversized_content_rejected(self, graph, email_item):
        email_item.remote_id = "rest-email"
        graph.download_message.return_value = b"x" * 11

        with pytest.raises(ContentTooLargeError):
            await GraphContentFetcher(graph, max_bytes=10).fetch(email_item)


class TestSliceReading:
    @pytest.mark.asyncio
    async def test_slices_read_in_order_and_file_closed(self):
        document = FakeDocument([b"ab", b"cd", b"ef"])

        assert await read_document(opener_for(document)) == b"abcdef"
        assert document.requested == [0, 1, 2]
        assert document.closed is True

    @pytest.mark.asyncio
    async def test_file_closed_when_slice_fails(self):
        document = FakeDocument([b"ab", b"cd"], fail_at=1)

        with pytest.raises(ClientRequestError):
            await read_document(opener_for(document))

        assert document.closed is True

    @pytest.mark.asyncio
    async def test_empty_slice_is_an_error(self):
        document = FakeDocument([b"ab", b""])

        with pytest.raises(ClientRequestError, match="No data in slice 1"):
            await read_document(opener_for(document))

        assert document.closed is True

    @pytest.mark.asyncio
    async def test_stops_early_when_too_large(self):
        document = FakeDocument([b"abcd", b"efgh", b"ijkl"])

        with pytest.raises(ContentTooLargeError):
            await read_document(opener_for(document), max_bytes=6)

        assert document.requested == [0, 1]
        assert document.closed is True


class TestOfficeDocumentFetcher:
    @pytest.mark.asyncio
    async def test_document_item_read_from_host(self, metadata):
        document = FakeDocument([b"docx"])
        item = UploadItem(local_id="doc", kind=ItemKind.DOCUMENT, metadata=metadata, name="brief.docx")

        assert await OfficeDocumentFetcher(opener_for(document)).fetch(item) == b"docx"

    @pytest.mark.asyncio
    async def test_other_kinds_go_to_fallback(self, graph, email_item):
        email_item.remote_id = "rest-email"
        fetcher = OfficeDocumentFetcher(opener_for(FakeDocument([])), fallback=GraphContentFetcher(graph))

        assert await fetcher.fetch(email_item) == b"EML"

    @pytest.mark.asyncio
    async def test_other_kinds_without_fallback_fail(self, email_item):
        with pytest.raises(PerItemSubmissionError):
            await OfficeDocumentFetcher(opener_for(FakeDocument([]))).fetch(email_item)
