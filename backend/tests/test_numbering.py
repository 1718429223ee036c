"""Display code generation for orders and batches."""

from datetime import date

import pytest

from bottleworks.models import SalesOrder
from bottleworks.utils.numbering import CodeGenerator


@pytest.mark.integration
@pytest.mark.asyncio
class TestCodeGenerator:
    async def test_first_code_of_the_day(self, db_session):
        codes = CodeGenerator(db_session)
        assert await codes.next("order", today=date(2026, 3, 1)) == "SO-20260301-001"
        assert await codes.next("batch", today=date(2026, 3, 1)) == "B-20260301-001"

    async def test_sequence_continues_from_highest_code(self, db_session, store):
        await store.insert(SalesOrder, {"human_uid": "SO-20260301-001"})
        await store.insert(SalesOrder, {"human_uid": "SO-20260301-007"})

        codes = CodeGenerator(db_session)
        assert await codes.next("order", today=date(2026, 3, 1)) == "SO-20260301-008"

    async def test_sequence_resets_daily(self, db_session, store):
        await store.insert(SalesOrder, {"human_uid": "SO-20260301-004"})
        codes = CodeGenerator(db_session)
        assert await codes.next("order", today=date(2026, 3, 2)) == "SO-20260302-001"

    async def test_custom_format(self, db_session):
        codes = CodeGenerator(db_session, formats={"batch": "{prefix}{date}/{seq:4}"})
        assert await codes.next("batch", today=date(2026, 3, 1)) == "B20260301/0001"

    async def test_sequence_past_padding_width(self, db_session, store):
        await store.insert(SalesOrder, {"human_uid": "SO-20260301-999"})
        await store.insert(SalesOrder, {"human_uid": "SO-20260301-1000"})

        codes = CodeGenerator(db_session)
        assert await codes.next("order", today=date(2026, 3, 1)) == "SO-20260301-1001"
