import asyncio
import logging

from worker.celery_app import celery
from notifyhub.channels.registry import ChannelRegistry
from notifyhub.core.config import settings
from notifyhub.core.db import make_engine, make_session_factory
from notifyhub.services.order_hooks import SqlOrderNotifiedHook
from notifyhub.services.outbox_drain import clamp_drain_limit, drain
from notifyhub.services.outbox_store import OutboxStore
from notifyhub.services.retry import RetryPolicy


log = logging.getLogger(__name__)

DRAIN_TASK = "worker.tasks.drain_notification_outbox"


async def _drain_notification_outbox(limit: int) -> dict:
    engine = make_engine(settings.database_url)
    session_factory = make_session_factory(engine)
    try:
        result = await drain(
            OutboxStore.from_settings(session_factory, settings),
            ChannelRegistry.from_import_paths(settings.channel_senders),
            limit=limit,
            hook=SqlOrderNotifiedHook(session_factory),
            policy=RetryPolicy.from_settings(settings),
            lease_seconds=settings.outbox_lease_seconds,
            max_limit=settings.drain_max_limit,
        )
    finally:
        await engine.dispose()
    return result.as_dict()


@celery.task(name=DRAIN_TASK, bind=True)
def drain_notification_outbox(self, limit: int | None = None) -> dict:
    capped = clamp_drain_limit(limit, default=settings.drain_default_limit, maximum=settings.drain_max_limit)
    return asyncio.run(_drain_notification_outbox(capped))


def nudge_drain(limit: int | None = None) -> bool:
    """
    Ask a worker to drain right away (lower latency than waiting for beat).

    Never raises: the beat sweep picks the rows up anyway if the broker is down.
    """
    try:
        celery.send_task(DRAIN_TASK, kwargs={"limit": limit}, queue="outbox")
        return True
    except Exception as e:
        log.warning("nudge_drain: enqueue failed: %s: %s", type(e).__name__, e)
        return False
