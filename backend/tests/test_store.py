"""SqlStore: filtered queries and conditional writes."""

import pytest

from bottleworks.errors import ConflictingUpdate, ResourceNotFoundError
from bottleworks.models import SalesOrder, WorkflowStep
from bottleworks.services.store import require


@pytest.mark.integration
@pytest.mark.asyncio
class TestSqlStore:
    async def _orders(self, store):
        a = await store.insert(SalesOrder, {"human_uid": "SO-T-001", "subtotal": 10.0})
        b = await store.insert(SalesOrder, {"human_uid": "SO-T-002", "subtotal": 30.0, "notes": "rush"})
        c = await store.insert(SalesOrder, {"human_uid": "SO-T-003", "subtotal": 20.0, "status": "quoted"})
        return a, b, c

    async def test_insert_applies_defaults(self, store):
        order = await store.insert(SalesOrder, {"human_uid": "SO-T-001"})
        assert order.id
        assert order.status == "draft"
        assert order.created_at is not None

    async def test_query_filters(self, store):
        a, b, c = await self._orders(store)

        drafts = await store.query(SalesOrder, {"status": "draft"}, order=["human_uid"])
        assert [o.id for o in drafts] == [a.id, b.id]

        some = await store.query(SalesOrder, {"human_uid": ["SO-T-001", "SO-T-003"]})
        assert {o.id for o in some} == {a.id, c.id}

        no_notes = await store.query(SalesOrder, {"notes": None})
        assert {o.id for o in no_notes} == {a.id, c.id}

    async def test_query_descending_order(self, store):
        a, b, c = await self._orders(store)
        ranked = await store.query(SalesOrder, order=["-subtotal"])
        assert [o.id for o in ranked] == [b.id, c.id, a.id]

    async def test_unknown_column(self, store):
        with pytest.raises(ValueError):
            await store.query(SalesOrder, {"colour": "red"})

    async def test_conditional_update(self, store):
        order = await store.insert(SalesOrder, {"human_uid": "SO-T-001"})

        updated = await store.update(
            SalesOrder, order.id, {"status": "quoted"}, expected={"status": "draft"},
        )
        assert updated.status == "quoted"

        with pytest.raises(ConflictingUpdate):
            await store.update(
                SalesOrder, order.id, {"status": "cancelled"}, expected={"status": "draft"},
            )
        assert (await store.get(SalesOrder, order.id)).status == "quoted"

    async def test_only_one_of_two_racing_step_starts_wins(self, store):
        step = await store.insert(WorkflowStep, {"batch_id": "b-1", "step": "produce", "position": 0})

        await store.update(WorkflowStep, step.id, {"status": "wip"}, expected={"status": "pending"})
        with pytest.raises(ConflictingUpdate):
            await store.update(WorkflowStep, step.id, {"status": "wip"}, expected={"status": "pending"})

    async def test_update_missing_record(self, store):
        with pytest.raises(ResourceNotFoundError):
            await store.update(SalesOrder, "missing", {"status": "quoted"})

    async def test_require_and_delete(self, store):
        order = await store.insert(SalesOrder, {"human_uid": "SO-T-001"})
        assert (await require(store, SalesOrder, order.id)).id == order.id

        await store.delete(SalesOrder, order.id)

        with pytest.raises(ResourceNotFoundError):
            await require(store, SalesOrder, order.id)
