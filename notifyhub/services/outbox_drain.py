from __future__ import annotations

import json
import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from opentelemetry import trace
from sqlalchemy.exc import SQLAlchemyError

from notifyhub.channels.base import ChannelSendError, ChannelSender
from notifyhub.core.errors import StoredPayloadError
from notifyhub.core.ids import utcnow
from notifyhub.schemas.notification import FULFILLMENT_CONFIRMING_TYPES
from notifyhub.services.order_hooks import OrderNotifiedHook
from notifyhub.services.outbox_store import ClaimedNotification, OutboxStore
from notifyhub.services.retry import RetryPolicy, next_attempt_at


log = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

MAX_DRAIN_LIMIT = 50
DEFAULT_LEASE_SECONDS = 300


@dataclass(frozen=True)
class DrainResult:
    done: int
    sent: int

    def as_dict(self) -> dict[str, int]:
        return {"done": self.done, "sent": self.sent}


def clamp_drain_limit(limit: int | None, *, default: int = 10, maximum: int = MAX_DRAIN_LIMIT) -> int:
    if limit is None:
        limit = default
    return max(1, min(int(limit), maximum))


def _error_message(err: BaseException) -> str:
    return str(err) or type(err).__name__


def _decode_payload(raw: Any) -> dict[str, Any]:
    # Older rows may carry a stringified payload
    if raw is None:
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise StoredPayloadError(f"undecodable payload: {e}") from e
    if not isinstance(raw, dict):
        raise StoredPayloadError(f"payload is not an object: {type(raw).__name__}")
    return dict(raw)


def _sender_message(row: ClaimedNotification, payload: dict[str, Any]) -> dict[str, Any]:
    # One channel per call; the dedupe key lets a transport de-duplicate on its side
    return {
        **payload,
        "organization_id": row.organization_id,
        "order_id": row.order_id,
        "type": row.type,
        "trigger": row.trigger,
        "outbox_id": row.id,
        "dedupe_key": row.dedupe_key,
    }


async def drain(
    store: OutboxStore,
    sender: ChannelSender,
    *,
    limit: int = 10,
    hook: OrderNotifiedHook | None = None,
    policy: RetryPolicy = RetryPolicy(),
    lease_seconds: int = DEFAULT_LEASE_SECONDS,
    max_limit: int = MAX_DRAIN_LIMIT,
    fulfillment_types: frozenset[str] = FULFILLMENT_CONFIRMING_TYPES,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> DrainResult:
    """
    Process one bounded batch of due notifications and return.

    Stateless between calls: meant to be invoked by an external scheduler or
    right after an enqueue. Rows are claimed under a lease before any send.
    `max_limit` is the batch ceiling; callers pass their configured one.
    """
    limit = clamp_drain_limit(limit, maximum=max_limit)
    started_at = now or utcnow()

    with tracer.start_as_current_span("outbox.drain") as span:
        due = await store.claim_due(limit=limit, now=started_at, lease_seconds=lease_seconds)
        log.info("outbox.drain: claimed %d due (limit=%d)", len(due), limit)
        span.set_attribute("outbox.claimed", len(due))

        sent = 0
        for row in due:
            # Fixed clock when injected, wall clock otherwise
            step_now = now or utcnow()
            try:
                message = _sender_message(row, _decode_payload(row.payload))
                await sender.send(row.channel, message)
            except Exception as e:  # any decode or sender failure consumes one attempt
                await _record_failure(store, row, e, now=step_now, policy=policy, rng=rng)
                continue

            # Only outcomes written under our own lease count as sent
            if await _record_success(store, row, now=step_now, hook=hook, fulfillment_types=fulfillment_types):
                sent += 1

        span.set_attribute("outbox.sent", sent)

    result = DrainResult(done=len(due), sent=sent)
    log.info("outbox.drain: done=%d sent=%d", result.done, result.sent)
    return result


async def _record_success(
    store: OutboxStore,
    row: ClaimedNotification,
    *,
    now: datetime,
    hook: OrderNotifiedHook | None,
    fulfillment_types: frozenset[str],
) -> bool:
    try:
        owned = await store.mark_sent(row, now=now)
    except SQLAlchemyError:
        # Row stays pending under our lease; it becomes eligible again once the lease expires
        log.exception("outbox.drain: could not mark sent id=%s", row.id)
        return False

    if owned:
        log.info("outbox.drain: sent id=%s channel=%s type=%s", row.id, row.channel, row.type)
    else:
        log.warning("outbox.drain: lease lost before marking sent id=%s lease=%s", row.id, row.lease_id)

    if hook is not None and row.order_id and row.type in fulfillment_types:
        try:
            await hook.mark_order_notified(row.order_id)
        except Exception:
            log.exception("outbox.drain: order hook failed id=%s order=%s", row.id, row.order_id)

    return owned


async def _record_failure(
    store: OutboxStore,
    row: ClaimedNotification,
    err: Exception,
    *,
    now: datetime,
    policy: RetryPolicy,
    rng: random.Random | None,
) -> None:
    attempts = row.attempts + 1
    retryable = err.retryable if isinstance(err, (ChannelSendError, StoredPayloadError)) else True
    dead = (not retryable) or attempts >= row.max_attempts
    retry_at = next_attempt_at(now, attempts, policy, rng)
    message = _error_message(err)

    try:
        owned = await store.mark_failed(
            row,
            attempts=attempts,
            next_attempt_at=retry_at,
            dead=dead,
            error=message,
            now=now,
        )
    except SQLAlchemyError:
        log.exception("outbox.drain: could not record failure id=%s", row.id)
        return

    if not owned:
        log.warning("outbox.drain: lease lost before recording failure id=%s lease=%s", row.id, row.lease_id)
        return

    log.warning(
        "outbox.drain: send failed id=%s channel=%s attempts=%d/%d retryable=%s status=%s next_attempt_at=%s error=%s",
        row.id,
        row.channel,
        attempts,
        row.max_attempts,
        retryable,
        "dead" if dead else "pending",
        retry_at.isoformat(),
        message,
    )
