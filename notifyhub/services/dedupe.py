from __future__ import annotations

import hashlib
import json
from typing import Any

from notifyhub.schemas.notification import FULFILLMENT_CONFIRMING_TYPES, NotificationPayload


ADMIN_ONLY_TRIGGER = "admin_only"


def make_dedupe_key(fields: dict[str, Any]) -> str:
    # Canonical form: sorted keys, no whitespace. Same logical input -> same key.
    raw = json.dumps(fields, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def normalize_salt(trigger: str | None, dedupe_salt: str | None) -> str:
    # Every admin code path ("merchant_admin:paid", "store_admin:paid", ...) collapses to one audience
    if (trigger or "") == ADMIN_ONLY_TRIGGER:
        return "admin"
    return dedupe_salt or ""


def is_stable_admin_order(*, order_id: str | None, notification_type: str, trigger: str | None) -> bool:
    return (
        (trigger or "") == ADMIN_ONLY_TRIGGER
        and notification_type in FULFILLMENT_CONFIRMING_TYPES
        and bool(order_id)
    )


def build_dedupe_key(
    *,
    organization_id: str,
    order_id: str | None,
    notification_type: str,
    trigger: str | None,
    channel: str,
    payload: NotificationPayload,
    dedupe_salt: str | None = None,
) -> str:
    """
    Identity of one (logical notification x channel x recipient) delivery.

    Admin-only paid/completed notices use a payload-agnostic key so different
    code paths rendering slightly different text still dedupe to one row.
    Everything else hashes the rendered content and recipients.
    """
    if is_stable_admin_order(order_id=order_id, notification_type=notification_type, trigger=trigger):
        return f"admin:{organization_id}:{order_id}:{notification_type}:{channel}"

    return make_dedupe_key({
        "org": organization_id,
        "order": order_id,
        "type": notification_type,
        "trigger": trigger,
        "channel": channel,
        "salt": normalize_salt(trigger, dedupe_salt),
        "client_id": payload.client_id,
        "user_id": payload.user_id,
        "vars": payload.variables,
        "subject": payload.subject or "",
        "message": payload.message,
    })
