"""Management CLI.

Usage:
    python -m bottleworks.cli recompute-batches   # Re-derive every batch status from its steps
    python -m bottleworks.cli list-batches        # Show batches with status and bottle counts
    python -m bottleworks.cli expire-quotes       # Send past-due quotes back to draft, flag those about to lapse
"""

import asyncio
import logging
import sys

from bottleworks.config import settings
from bottleworks.database import async_session
from bottleworks.models.batch import ProductionBatch
from bottleworks.services.audit import SqlAuditSink
from bottleworks.services.notifier import WebhookNotifier
from bottleworks.services.orders import OrderStateMachine
from bottleworks.services.store import SqlStore
from bottleworks.services.validator import SqlTransitionValidator
from bottleworks.services.workflow import BatchWorkflowEngine
from bottleworks.utils.numbering import CodeGenerator

logger = logging.getLogger("bottleworks.cli")


async def recompute_batches() -> None:
    """Re-derive the status of every batch; safe to run repeatedly."""
    async with async_session() as db:
        store = SqlStore(db)
        engine = BatchWorkflowEngine(store, SqlAuditSink(db), CodeGenerator(db))
        batches = await store.query(ProductionBatch, order=("created_at",))
        changed = 0
        for batch in batches:
            before = batch.status
            after = await engine.recompute_batch(batch.id)
            if after.status != before:
                changed += 1
                print(f"  {after.uid}: {before} -> {after.status}")
        await db.commit()
    print(f"\n{len(batches)} batch(es) checked, {changed} updated")


async def expire_quotes() -> None:
    """Run the quote expiry sweep once; meant for a daily cron."""
    async with async_session() as db:
        notifier = WebhookNotifier(
            settings.notification_webhook_url,
            timeout=settings.notification_timeout_seconds,
        )
        machine = OrderStateMachine(
            SqlStore(db), SqlTransitionValidator(db), SqlAuditSink(db), notifier,
        )
        sweep = await machine.expire_quotes()
        await db.commit()
    for outcome in sweep.expired:
        print(f"  {outcome.order.human_uid}: expired -> draft")
    for order in sweep.expiring_soon:
        print(f"  {order.human_uid}: expires {order.quote_expires_at:%Y-%m-%d %H:%M}")
    for uid, reason in sweep.failed.items():
        print(f"  {uid}: not expired ({reason})")
    print(
        f"\n{len(sweep.expired)} expired, {len(sweep.expiring_soon)} expiring soon, "
        f"{len(sweep.failed)} failed"
    )


async def list_batches() -> None:
    async with async_session() as db:
        batches = await SqlStore(db).query(ProductionBatch, order=("so_id", "priority_index"))
    for b in batches:
        print(
            f"  {b.uid:<16} {b.status:<9} "
            f"planned={b.qty_bottle_planned} good={b.qty_bottle_good} scrap={b.qty_bottle_scrap}"
        )
    print(f"\n{len(batches)} batch(es)")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "recompute-batches":
        asyncio.run(recompute_batches())
    elif cmd == "list-batches":
        asyncio.run(list_batches())
    elif cmd == "expire-quotes":
        asyncio.run(expire_quotes())
    else:
        print("Usage: python -m bottleworks.cli [recompute-batches|list-batches|expire-quotes]")
