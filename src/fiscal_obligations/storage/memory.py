"""In-memory collaborator implementations.

Suitable for tests, dry runs and hosts that keep everything in process.
All data is lost when the process terminates.
"""

import asyncio
from collections import Counter
from collections.abc import Iterable, Sequence
from copy import deepcopy
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any
from uuid import uuid4

from fiscal_obligations.errors import BusinessNotFound
from fiscal_obligations.models import (
    Actor,
    BusinessProfile,
    GenerationWindow,
    Obligation,
    ObligationDraft,
    ObligationStatus,
    RecurrenceTemplate,
    TagDuplicateStats,
)
from fiscal_obligations.ports import (
    ActorDirectory,
    AuditLog,
    BusinessDirectory,
    ObligationStore,
    TemplateCatalog,
)

GeneratedKey = tuple[str, str | None, date, str]


def _generated_key(draft: ObligationDraft) -> GeneratedKey:
    return (draft.business_id, draft.template_id, draft.due_date, draft.period)


class InMemoryBusinessDirectory(BusinessDirectory):
    """Business profiles keyed by id."""

    def __init__(self, businesses: Iterable[BusinessProfile] = ()):
        self._businesses: dict[str, BusinessProfile] = {b.id: b for b in businesses}

    def add(self, business: BusinessProfile) -> None:
        self._businesses[business.id] = business

    def remove(self, business_id: str) -> None:
        self._businesses.pop(business_id, None)

    async def get_business_profile(self, business_id: str) -> BusinessProfile:
        try:
            return self._businesses[business_id]
        except KeyError:
            raise BusinessNotFound(business_id) from None

    async def list_active_businesses(self) -> list[BusinessProfile]:
        return [b for b in self._businesses.values() if b.status == "active"]


class InMemoryTemplateCatalog(TemplateCatalog):
    """Recurrence templates in insertion order."""

    def __init__(self, templates: Iterable[RecurrenceTemplate] = ()):
        self._templates: list[RecurrenceTemplate] = list(templates)

    def replace(self, templates: Iterable[RecurrenceTemplate]) -> None:
        self._templates = list(templates)

    def remove(self, template_id: str) -> None:
        self._templates = [t for t in self._templates if t.id != template_id]

    async def list_templates(self, category: str | None = None) -> list[RecurrenceTemplate]:
        if category is None:
            return list(self._templates)
        return [t for t in self._templates if t.category == category]


class InMemoryObligationStore(ObligationStore):
    """Obligation records with a uniqueness check on generated rows.

    Batches are applied under a lock so one business's insert is all or
    nothing and concurrent runs cannot interleave a check with a write.
    """

    def __init__(self, obligations: Iterable[Obligation] = ()):
        self._records: dict[str, Obligation] = {o.id: o for o in obligations}
        self._lock = asyncio.Lock()

    @property
    def records(self) -> list[Obligation]:
        return list(self._records.values())

    def add(self, obligation: Obligation) -> None:
        self._records[obligation.id] = obligation

    def for_business(self, business_id: str) -> list[Obligation]:
        return sorted(
            (o for o in self._records.values() if o.business_id == business_id),
            key=lambda o: (o.due_date, o.tag),
        )

    def generated(self) -> list[Obligation]:
        return [o for o in self._records.values() if o.is_generated]

    async def count_existing_generated(
        self,
        business_id: str,
        tag: str,
        due_date: date,
        period: str | None = None,
    ) -> int:
        return sum(
            1
            for o in self._records.values()
            if o.is_generated
            and o.business_id == business_id
            and o.tag == tag
            and o.due_date == due_date
            and (period is None or o.period == period)
        )

    async def insert_obligations(
        self, business_id: str, drafts: Sequence[ObligationDraft]
    ) -> list[Obligation]:
        async with self._lock:
            taken = {_generated_key(o) for o in self._records.values() if o.is_generated}
            now = datetime.now(UTC)
            staged: list[Obligation] = []

            for draft in drafts:
                if draft.business_id != business_id:
                    raise ValueError(
                        f"Draft for {draft.business_id} in batch for {business_id}"
                    )
                if draft.is_generated:
                    key = _generated_key(draft)
                    if key in taken:
                        continue
                    taken.add(key)
                staged.append(
                    Obligation.from_draft(deepcopy(draft), str(uuid4()), now)
                )

            for obligation in staged:
                self._records[obligation.id] = obligation
            return staged

    async def delete_generated_obligations(self) -> int:
        async with self._lock:
            doomed = [oid for oid, o in self._records.items() if o.is_generated]
            for oid in doomed:
                del self._records[oid]
            return len(doomed)

    async def summarize(self, business_id: str) -> dict[str, Any]:
        records = self.for_business(business_id)
        by_status = {status: 0 for status in ObligationStatus}
        for record in records:
            by_status[record.status] += 1
        return {
            "total_obligations": len(records),
            "pending_obligations": by_status[ObligationStatus.PENDING],
            "completed_obligations": by_status[ObligationStatus.COMPLETED],
            "overdue_obligations": by_status[ObligationStatus.OVERDUE],
            "earliest_due_date": records[0].due_date if records else None,
            "latest_due_date": records[-1].due_date if records else None,
        }

    async def has_obligations(self, business_id: str) -> bool:
        return any(o.business_id == business_id for o in self._records.values())

    async def duplicate_stats(
        self, business_id: str, window: GenerationWindow
    ) -> list[TagDuplicateStats]:
        totals: Counter[str] = Counter()
        generated: Counter[str] = Counter()
        for record in self._records.values():
            if record.business_id != business_id or record.due_date not in window:
                continue
            totals[record.tag] += 1
            if record.is_generated:
                generated[record.tag] += 1

        return [
            TagDuplicateStats(tag=tag, total_count=count, generated_count=generated[tag])
            for tag, count in sorted(totals.items())
            if count > 1
        ]


@dataclass
class RecordedAuditEntry:
    kind: str
    actor: Actor | None
    payload: dict[str, Any]
    recorded_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class InMemoryAuditLog(AuditLog):
    """Append-only list of audit entries."""

    def __init__(self) -> None:
        self.entries: list[RecordedAuditEntry] = []

    async def append_audit_entry(
        self, kind: str, actor: Actor | None, payload: dict[str, Any]
    ) -> None:
        self.entries.append(RecordedAuditEntry(kind=kind, actor=actor, payload=payload))


class InMemoryActorDirectory(ActorDirectory):
    """Accounts in creation order; the first admin is the system actor."""

    def __init__(self, actors: Iterable[Actor] = ()):
        self._actors: list[Actor] = list(actors)

    async def resolve(self, identity: str) -> Actor | None:
        for actor in self._actors:
            if identity in (actor.id, actor.email):
                return actor
        return None

    async def default_system_actor(self) -> Actor | None:
        return next((a for a in self._actors if a.is_admin), None)
