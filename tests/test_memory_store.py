"""Tests for the in-memory collaborators."""

from datetime import date

import pytest

from conftest import make_business, make_template
from fiscal_obligations.errors import BusinessNotFound
from fiscal_obligations.models import (
    GENERATED_MARKER,
    BusinessProfile,
    GenerationWindow,
    Obligation,
    ObligationDraft,
    ObligationStatus,
    Priority,
)
from fiscal_obligations.storage import (
    InMemoryActorDirectory,
    InMemoryBusinessDirectory,
    InMemoryObligationStore,
    InMemoryTemplateCatalog,
)


def _draft(business_id="b1", due=date(2024, 3, 10), template_id="cnss", generated=True):
    metadata = {GENERATED_MARKER: True, "calendar_entry_id": template_id} if generated else {}
    return ObligationDraft(
        business_id=business_id,
        title="CNSS - Declaration March 2024",
        description="",
        tag="CNSS",
        due_date=due,
        priority=Priority.LOW,
        period="March 2024",
        metadata=metadata,
    )


class TestObligationStore:
    @pytest.mark.asyncio
    async def test_insert_assigns_ids(self):
        store = InMemoryObligationStore()

        persisted = await store.insert_obligations("b1", [_draft(), _draft(due=date(2024, 4, 10))])

        assert len(persisted) == 2
        assert all(o.id for o in persisted)
        assert len({o.id for o in persisted}) == 2
        assert all(o.created_at is not None for o in persisted)

    @pytest.mark.asyncio
    async def test_generated_duplicates_dropped_on_insert(self):
        store = InMemoryObligationStore()
        await store.insert_obligations("b1", [_draft()])

        persisted = await store.insert_obligations("b1", [_draft(), _draft()])

        assert persisted == []
        assert len(store.records) == 1

    @pytest.mark.asyncio
    async def test_manual_obligations_never_conflict(self):
        store = InMemoryObligationStore()

        persisted = await store.insert_obligations(
            "b1", [_draft(generated=False), _draft(generated=False)]
        )

        assert len(persisted) == 2

    @pytest.mark.asyncio
    async def test_batch_for_other_business_rejected(self):
        store = InMemoryObligationStore()

        with pytest.raises(ValueError):
            await store.insert_obligations("b1", [_draft(), _draft(business_id="b2")])

        assert store.records == []

    @pytest.mark.asyncio
    async def test_count_existing_generated(self):
        store = InMemoryObligationStore()
        await store.insert_obligations("b1", [_draft(), _draft(generated=False)])

        assert await store.count_existing_generated("b1", "CNSS", date(2024, 3, 10)) == 1
        assert (
            await store.count_existing_generated("b1", "CNSS", date(2024, 3, 10), "Q1 2024")
            == 0
        )

    @pytest.mark.asyncio
    async def test_delete_generated_keeps_manual(self):
        store = InMemoryObligationStore()
        await store.insert_obligations("b1", [_draft(), _draft(generated=False)])
        await store.insert_obligations("b2", [_draft(business_id="b2")])

        deleted = await store.delete_generated_obligations()

        assert deleted == 2
        assert [o.is_generated for o in store.records] == [False]

    @pytest.mark.asyncio
    async def test_summarize(self):
        store = InMemoryObligationStore()
        await store.insert_obligations(
            "b1", [_draft(due=date(2024, 5, 10)), _draft(due=date(2024, 2, 10))]
        )
        store.add(
            Obligation(
                business_id="b1",
                title="Old",
                description="",
                tag="IS",
                due_date=date(2023, 12, 31),
                priority=Priority.URGENT,
                period="2023",
                status=ObligationStatus.COMPLETED,
                id="done",
            )
        )

        summary = await store.summarize("b1")

        assert summary == {
            "total_obligations": 3,
            "pending_obligations": 2,
            "completed_obligations": 1,
            "overdue_obligations": 0,
            "earliest_due_date": date(2023, 12, 31),
            "latest_due_date": date(2024, 5, 10),
        }

    @pytest.mark.asyncio
    async def test_summarize_empty(self):
        summary = await InMemoryObligationStore().summarize("nobody")

        assert summary["total_obligations"] == 0
        assert summary["earliest_due_date"] is None

    @pytest.mark.asyncio
    async def test_has_obligations_counts_manual_records(self):
        store = InMemoryObligationStore()
        await store.insert_obligations("b1", [_draft(generated=False)])

        assert await store.has_obligations("b1") is True
        assert await store.has_obligations("b2") is False

    @pytest.mark.asyncio
    async def test_duplicate_stats(self):
        store = InMemoryObligationStore()
        await store.insert_obligations(
            "b1",
            [
                _draft(),
                _draft(template_id="cnss-bis"),
                _draft(generated=False),
                _draft(due=date(2025, 3, 10)),
            ],
        )
        await store.insert_obligations("b2", [_draft(business_id="b2"), _draft(business_id="b2")])
        store.add(
            Obligation(
                business_id="b1",
                title="IS",
                description="",
                tag="IS",
                due_date=date(2024, 3, 31),
                priority=Priority.HIGH,
                period="2023",
                id="is-1",
            )
        )

        stats = await store.duplicate_stats(
            "b1", GenerationWindow(date(2024, 1, 1), date(2024, 12, 31))
        )

        (cnss,) = stats
        assert cnss.tag == "CNSS"
        assert cnss.total_count == 3
        assert cnss.generated_count == 2
        assert cnss.manual_count == 1


class TestDirectories:
    @pytest.mark.asyncio
    async def test_business_lookup(self):
        directory = InMemoryBusinessDirectory([make_business("b1")])

        assert (await directory.get_business_profile("b1")).id == "b1"
        with pytest.raises(BusinessNotFound):
            await directory.get_business_profile("b2")

    @pytest.mark.asyncio
    async def test_inactive_businesses_not_listed(self):
        directory = InMemoryBusinessDirectory([make_business("b1")])
        directory.add(BusinessProfile(id="b2", name="B", category="X", status="archived"))

        assert [b.id for b in await directory.list_active_businesses()] == ["b1"]

    @pytest.mark.asyncio
    async def test_catalog_category_filter(self):
        catalog = InMemoryTemplateCatalog(
            [make_template("a"), make_template("b", category="Personne Physique")]
        )

        assert [t.id for t in await catalog.list_templates("Personne Physique")] == ["b"]
        assert len(await catalog.list_templates()) == 2

    @pytest.mark.asyncio
    async def test_actor_resolution(self, admin, accountant):
        actors = InMemoryActorDirectory([accountant, admin])

        assert await actors.resolve("acct@example.com") == accountant
        assert await actors.resolve("u-admin") == admin
        assert await actors.resolve("nobody") is None
        assert await actors.default_system_actor() == admin

    @pytest.mark.asyncio
    async def test_no_admin(self, accountant):
        assert await InMemoryActorDirectory([accountant]).default_system_actor() is None
