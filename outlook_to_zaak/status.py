"""In-memory per-item upload status."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Callable, Iterable, Optional

from .models import AggregateResult, ItemKind, MutationRecord, MutationStatus


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class StatusRegistry:
    """Map from item id to the latest MutationRecord of that item.

    Every transition replaces the record for the id, so an id never holds
    more than one state. ``snapshot`` only looks at the ids it is given,
    which keeps records of earlier batches out of the aggregate.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._records: dict[str, MutationRecord] = {}
        self._clock = clock

    def __len__(self) -> int:
        return len(self._records)

    def get(self, item_id: str) -> Optional[MutationRecord]:
        return self._records.get(item_id)

    def record_pending(self, item_id: str, kind: ItemKind = ItemKind.ATTACHMENT) -> MutationRecord:
        record = MutationRecord(
            item_id=item_id,
            kind=kind,
            status=MutationStatus.PENDING,
            started_at=self._clock(),
        )
        self._records[item_id] = record
        return record

    def record_success(self, item_id: str) -> MutationRecord:
        return self._settle(item_id, MutationStatus.SUCCESS, None)

    def record_error(self, item_id: str, error: Optional[Exception] = None) -> MutationRecord:
        return self._settle(item_id, MutationStatus.ERROR, error)

    def reset(self) -> None:
        self._records.clear()

    def _settle(
        self, item_id: str, status: MutationStatus, error: Optional[Exception]
    ) -> MutationRecord:
        now = self._clock()
        previous = self._records.get(item_id)
        record = MutationRecord(
            item_id=item_id,
            kind=previous.kind if previous else ItemKind.ATTACHMENT,
            status=status,
            started_at=previous.started_at if previous else now,
            ended_at=now,
            error=error,
        )
        self._records[item_id] = record
        return record

    def snapshot(self, selected_ids: Iterable[str]) -> AggregateResult:
        selected = list(dict.fromkeys(selected_ids))
        pending: set[str] = set()
        succeeded: set[str] = set()
        failed: set[str] = set()

        for item_id in selected:
            record = self._records.get(item_id)
            if record is None:
                continue
            if record.status is MutationStatus.PENDING:
                pending.add(item_id)
            elif record.status is MutationStatus.SUCCESS:
                succeeded.add(item_id)
            else:
                failed.add(item_id)

        complete = bool(selected) and not pending and len(succeeded) + len(failed) == len(selected)

        uploaded_email = False
        uploaded_attachments = 0
        if complete:
            for item_id in succeeded:
                if self._records[item_id].kind is ItemKind.EMAIL:
                    uploaded_email = True
                else:
                    uploaded_attachments += 1

        return AggregateResult(
            uploaded_email=uploaded_email,
            uploaded_attachment_count=uploaded_attachments,
            failed_count=len(failed),
            all_succeeded=complete and not failed,
            any_failed=complete and bool(failed),
            complete=complete,
            in_flight=bool(pending),
            pending_ids=frozenset(pending),
            succeeded_ids=frozenset(succeeded),
            failed_ids=frozenset(failed),
        )
