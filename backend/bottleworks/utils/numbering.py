"""Sequential display-code generation.

Format tokens:
  {prefix}     → configured prefix for the entity (settings)
  {date}       → YYYYMMDD
  {seq:N}      → zero-padded sequence number, N digits, resets daily per prefix

Default formats:
  order:  SO-{date}-{seq:3}
  batch:  B-{date}-{seq:3}
"""

import re
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bottleworks.config import settings
from bottleworks.models.batch import ProductionBatch
from bottleworks.models.order import SalesOrder

DEFAULT_FORMATS = {
    "order": "{prefix}-{date}-{seq:3}",
    "batch": "{prefix}-{date}-{seq:3}",
}

# Map entity types to their code column for counting
ENTITY_COLUMN_MAP = {
    "order": SalesOrder.human_uid,
    "batch": ProductionBatch.uid,
}


def _entity_prefix(entity: str) -> str:
    if entity == "order":
        return settings.order_code_prefix
    return settings.batch_code_prefix


def _build_prefix(fmt: str, entity_prefix: str, today_str: str) -> str:
    """Everything before {seq:N}, used to count codes issued today."""
    prefix = fmt.replace("{prefix}", entity_prefix).replace("{date}", today_str)
    return re.sub(r"\{seq:\d+\}.*$", "", prefix)


class CodeGenerator:
    """Issues the next human-readable code for orders and batches."""

    def __init__(self, db: AsyncSession, formats: dict[str, str] | None = None):
        self.db = db
        self.formats = {**DEFAULT_FORMATS, **(formats or {})}

    async def _last_sequence(self, entity: str, prefix: str) -> int:
        """Highest sequence already issued under this prefix.

        Split and merge delete batches, so the row count is not a safe
        sequence source.
        """
        column = ENTITY_COLUMN_MAP[entity]
        # Longer codes carry larger sequences; "-1000" sorts below "-999" as text
        result = await self.db.execute(
            select(column)
            .where(column.like(f"{prefix}%"))
            .order_by(func.length(column).desc(), column.desc())
            .limit(1)
        )
        last = result.scalar()
        if not last:
            return 0
        match = re.match(r"\d+", last[len(prefix):])
        return int(match.group(0)) if match else 0

    async def next(self, entity: str, today: date | None = None) -> str:
        """Generate the next code, e.g. ``B-20260301-004``.

        Args:
            entity: "order" or "batch"
            today: override for the date token (defaults to today)
        """
        fmt = self.formats[entity]
        today_str = (today or date.today()).strftime("%Y%m%d")
        entity_prefix = _entity_prefix(entity)

        prefix = _build_prefix(fmt, entity_prefix, today_str)
        seq_num = await self._last_sequence(entity, prefix) + 1

        seq_match = re.search(r"\{seq:(\d+)\}", fmt)
        seq_width = int(seq_match.group(1)) if seq_match else 3

        code = fmt.replace("{prefix}", entity_prefix).replace("{date}", today_str)
        return re.sub(r"\{seq:\d+\}", f"{seq_num:0{seq_width}d}", code)
