from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping

from sqlalchemy.exc import SQLAlchemyError

from notifyhub.core.ids import gen_id, utcnow
from notifyhub.models.outbox import OUTBOX_PENDING
from notifyhub.schemas.notification import NOTIFICATION_CHANNELS, NotificationPayload, validate_payload
from notifyhub.services.dedupe import build_dedupe_key, is_stable_admin_order, normalize_salt
from notifyhub.services.outbox_store import OutboxStore


log = logging.getLogger(__name__)


@dataclass
class EnqueueResult:
    inserted: dict[str, str] = field(default_factory=dict)   # channel -> dedupe_key
    existing: dict[str, str] = field(default_factory=dict)   # channel -> dedupe_key (already queued)
    failed: dict[str, str] = field(default_factory=dict)     # channel -> error

    @property
    def dedupe_keys(self) -> dict[str, str]:
        return {**self.existing, **self.inserted}


def _unique(channels: Iterable[str]) -> list[str]:
    seen: list[str] = []
    for ch in channels:
        if ch not in seen:
            seen.append(ch)
    return seen


async def enqueue_notification_fanout(
    store: OutboxStore,
    *,
    organization_id: str,
    notification_type: str,
    channels: Iterable[str],
    payload: Mapping[str, Any] | NotificationPayload,
    order_id: str | None = None,
    trigger: str | None = None,
    dedupe_salt: str | None = None,
    max_attempts: int | None = None,
    now: datetime | None = None,
) -> EnqueueResult:
    """
    Write one outbox row per channel, idempotent by dedupe_key.

    Each channel is its own unit of work: a store error on one channel is
    logged and reported in `failed`, the other channels still land. Payload
    validation happens once, before anything is written. Without an explicit
    `max_attempts` the store's configured retry budget is used.
    """
    body = validate_payload(notification_type, payload)
    stored_payload = body.model_dump(exclude_none=True)
    now = now or utcnow()
    if max_attempts is None:
        max_attempts = store.default_max_attempts
    result = EnqueueResult()

    for ch in _unique(channels):
        if ch not in NOTIFICATION_CHANNELS:
            log.warning("outbox.enqueue: unknown channel=%s org=%s type=%s", ch, organization_id, notification_type)
            result.failed[ch] = f"unknown channel: {ch}"
            continue

        dedupe_key = build_dedupe_key(
            organization_id=organization_id,
            order_id=order_id,
            notification_type=notification_type,
            trigger=trigger,
            channel=ch,
            payload=body,
            dedupe_salt=dedupe_salt,
        )

        values = {
            "id": gen_id("out"),
            "organization_id": organization_id,
            "order_id": order_id,
            "type": notification_type,
            "trigger": trigger,
            "channel": ch,
            "payload": stored_payload,
            "dedupe_key": dedupe_key,
            "attempts": 0,
            "max_attempts": max_attempts,
            "next_attempt_at": now,
            "last_error": None,
            "status": OUTBOX_PENDING,
            "created_at": now,
            "updated_at": now,
        }

        try:
            inserted = await store.insert_if_absent(values)
        except (SQLAlchemyError, ValueError) as e:
            log.exception("outbox.enqueue: insert failed channel=%s dedupe_key=%s", ch, dedupe_key)
            result.failed[ch] = f"{type(e).__name__}: {e}"
            continue

        if inserted:
            result.inserted[ch] = dedupe_key
        else:
            result.existing[ch] = dedupe_key

        log.info(
            "outbox.enqueue: org=%s order=%s type=%s trigger=%s channel=%s inserted=%s strategy=%s salt=%s",
            organization_id,
            order_id,
            notification_type,
            trigger,
            ch,
            inserted,
            "stable-admin-order"
            if is_stable_admin_order(order_id=order_id, notification_type=notification_type, trigger=trigger)
            else "hash",
            normalize_salt(trigger, dedupe_salt),
        )

    return result


async def enqueue_simple_notification(
    store: OutboxStore,
    *,
    organization_id: str,
    notification_type: str,
    channels: Iterable[str],
    payload: Mapping[str, Any] | NotificationPayload,
    trigger: str | None = None,
    dedupe_salt: str | None = None,
) -> EnqueueResult:
    """Fan-out for notifications not tied to an order (rules engine, tickets)."""
    return await enqueue_notification_fanout(
        store,
        organization_id=organization_id,
        notification_type=notification_type,
        channels=channels,
        payload=payload,
        order_id=None,
        trigger=trigger,
        dedupe_salt=dedupe_salt,
    )
