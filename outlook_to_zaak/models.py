"""Typed containers shared across the uploader."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional


class ItemKind(str, enum.Enum):
    EMAIL = "email"
    ATTACHMENT = "attachment"
    DOCUMENT = "document"


class MutationStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Credential:
    """Bearer token plus the instant it stops being accepted."""

    value: str
    expires_at: datetime

    def is_valid(self, now: datetime, margin: timedelta) -> bool:
        return self.expires_at > now + margin


@dataclass
class DocumentMetadata:
    """Form fields that describe the document record in the case system."""

    case_id: str
    title: str = ""
    confidentiality: str = "openbaar"
    document_type: str = ""
    status: str = ""
    created: Optional[datetime] = None
    author: str = ""


@dataclass
class UploadItem:
    """One selected e-mail, attachment or office document."""

    local_id: str
    kind: ItemKind
    metadata: DocumentMetadata
    name: str = ""
    content_type: str = "application/octet-stream"
    parent_local_id: Optional[str] = None
    remote_id: Optional[str] = None
    parent_remote_id: Optional[str] = None
    content: Optional[bytes] = None

    @property
    def is_email(self) -> bool:
        return self.kind is ItemKind.EMAIL


@dataclass
class MutationRecord:
    """Lifecycle of one item's submission."""

    item_id: str
    kind: ItemKind
    status: MutationStatus
    started_at: datetime
    ended_at: Optional[datetime] = None
    error: Optional[Exception] = None

    @property
    def terminal(self) -> bool:
        return self.status is not MutationStatus.PENDING


@dataclass(frozen=True)
class AggregateResult:
    """Batch-level view over the records of the selected items."""

    uploaded_email: bool = False
    uploaded_attachment_count: int = 0
    failed_count: int = 0
    all_succeeded: bool = False
    any_failed: bool = False
    complete: bool = False
    in_flight: bool = False
    pending_ids: frozenset[str] = frozenset()
    succeeded_ids: frozenset[str] = frozenset()
    failed_ids: frozenset[str] = frozenset()


@dataclass
class RunResult:
    """Outcome of one orchestrator run."""

    error: Optional[Exception] = None
    summary: AggregateResult = field(default_factory=AggregateResult)

    @property
    def ok(self) -> bool:
        return self.error is None
