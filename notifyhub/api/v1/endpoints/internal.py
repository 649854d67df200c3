import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from notifyhub.api.deps import get_channel_sender, get_order_hook, get_outbox_store
from notifyhub.channels.base import ChannelSender
from notifyhub.core.config import settings
from notifyhub.schemas.outbox import DrainOut, OutboxStatsOut, OutboxStatusCount
from notifyhub.services.internal_auth import require_internal_secret
from notifyhub.services.order_hooks import OrderNotifiedHook
from notifyhub.services.outbox_drain import clamp_drain_limit, drain
from notifyhub.services.outbox_store import OutboxStore
from notifyhub.services.retry import RetryPolicy

log = logging.getLogger(__name__)

router = APIRouter(prefix="/internal/notifications", dependencies=[Depends(require_internal_secret)])


async def _run_drain(limit: int | None, store: OutboxStore, sender: ChannelSender, hook: OrderNotifiedHook | None) -> DrainOut:
    capped = clamp_drain_limit(limit, default=settings.drain_default_limit, maximum=settings.drain_max_limit)
    log.info("internal drain: draining limit=%d", capped)
    try:
        res = await drain(
            store,
            sender,
            limit=capped,
            hook=hook,
            policy=RetryPolicy.from_settings(settings),
            lease_seconds=settings.outbox_lease_seconds,
            max_limit=settings.drain_max_limit,
        )
    except Exception as e:
        log.exception("internal drain: drain error")
        raise HTTPException(status_code=500, detail=f"{type(e).__name__}: {e}")
    return DrainOut(**res.as_dict())


@router.post("/drain", response_model=DrainOut)
async def internal_drain(
    limit: int | None = Query(default=None),
    store: OutboxStore = Depends(get_outbox_store),
    sender: ChannelSender = Depends(get_channel_sender),
    hook: OrderNotifiedHook | None = Depends(get_order_hook),
) -> DrainOut:
    return await _run_drain(limit, store, sender, hook)


# GET for cron runners that can only issue plain GETs (auth via ?secret=)
@router.get("/drain", response_model=DrainOut)
async def internal_drain_get(
    limit: int | None = Query(default=None),
    store: OutboxStore = Depends(get_outbox_store),
    sender: ChannelSender = Depends(get_channel_sender),
    hook: OrderNotifiedHook | None = Depends(get_order_hook),
) -> DrainOut:
    return await _run_drain(limit, store, sender, hook)


@router.get("/stats", response_model=OutboxStatsOut)
async def outbox_stats(
    organization_id: str | None = Query(default=None),
    store: OutboxStore = Depends(get_outbox_store),
) -> OutboxStatsOut:
    rows = await store.status_counts(organization_id)
    totals: dict[str, int] = {}
    for status, _channel, count in rows:
        totals[status] = totals.get(status, 0) + count
    return OutboxStatsOut(
        totals=totals,
        by_channel=[OutboxStatusCount(status=s, channel=c, count=n) for s, c, n in rows],
    )
