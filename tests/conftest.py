"""
Pytest fixtures for the uploader tests.
"""
import pytest

from helpers import NOW, Clock, make_token
from outlook_to_zaak.models import DocumentMetadata, ItemKind, UploadItem


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def token():
    return make_token()


@pytest.fixture
def metadata():
    return DocumentMetadata(
        case_id="ZAAK-2025-0001",
        title="",
        document_type="https://catalogi.example.nl/informatieobjecttypen/1",
        status="definitief",
        created=NOW,
        author="Test User",
    )


@pytest.fixture
def email_item(metadata):
    return UploadItem(
        local_id="ews-email",
        kind=ItemKind.EMAIL,
        metadata=metadata,
        name="E-mail: Offerte.eml",
        content_type="message/rfc822",
    )


@pytest.fixture
def attachment_items(metadata):
    return [
        UploadItem(
            local_id=f"ews-att-{i}",
            kind=ItemKind.ATTACHMENT,
            metadata=metadata,
            name=f"bijlage-{i}.pdf",
            content_type="application/pdf",
            parent_local_id="ews-email",
        )
        for i in (1, 2)
    ]
