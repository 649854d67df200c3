from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notifyhub.core.ids import utcnow
from notifyhub.models.order import Order


log = logging.getLogger(__name__)


class OrderNotifiedHook(Protocol):
    async def mark_order_notified(self, order_id: str) -> bool:
        """Idempotently flag the order as notified. Returns True only when the flag flipped."""
        ...


class SqlOrderNotifiedHook:
    """
    Sets orders.notified_paid_or_completed = true.

    Several channel rows share one order, so this is called once per successful
    channel; the conditional WHERE makes every call after the first a no-op.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def mark_order_notified(self, order_id: str) -> bool:
        async with self.session_factory() as db:
            async with db.begin():
                result = await db.execute(
                    update(Order)
                    .where(Order.id == order_id, Order.notified_paid_or_completed.is_not(True))
                    .values(notified_paid_or_completed=True, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
                changed = int(result.rowcount or 0) == 1

        if changed:
            log.info("order hook: set notified_paid_or_completed order_id=%s", order_id)
        return changed
