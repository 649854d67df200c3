from __future__ import annotations

from typing import Any, Literal, Mapping, get_args

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from notifyhub.core.errors import PayloadValidationError


NotificationType = Literal[
    "order_placed",
    "order_paid",
    "order_completed",
    "order_ready",
    "order_cancelled",
    "order_refunded",
    "order_message",
    "ticket_created",
    "ticket_replied",
]

NotificationChannel = Literal["email", "in_app", "webhook", "telegram"]

NOTIFICATION_TYPES: frozenset[str] = frozenset(get_args(NotificationType))
NOTIFICATION_CHANNELS: frozenset[str] = frozenset(get_args(NotificationChannel))

# Successful delivery of these flips orders.notified_paid_or_completed
FULFILLMENT_CONFIRMING_TYPES: frozenset[str] = frozenset({"order_paid", "order_completed"})


class NotificationPayload(BaseModel):
    """What a channel sender needs to deliver one message. Channels are added per row."""

    model_config = ConfigDict(extra="forbid")

    message: str = Field(min_length=1)
    subject: str | None = None
    variables: dict[str, str] = Field(default_factory=dict)
    country: str | None = None
    user_id: str | None = None     # explicit admin target
    client_id: str | None = None   # explicit buyer/client target
    url: str | None = None
    ticket_id: str | None = None


class TicketPayload(NotificationPayload):
    ticket_id: str = Field(min_length=1)


PAYLOAD_MODELS: dict[str, type[NotificationPayload]] = {
    "ticket_created": TicketPayload,
    "ticket_replied": TicketPayload,
}


def payload_model_for(notification_type: str) -> type[NotificationPayload]:
    return PAYLOAD_MODELS.get(notification_type, NotificationPayload)


def validate_payload(notification_type: str, payload: Mapping[str, Any] | NotificationPayload) -> NotificationPayload:
    if notification_type not in NOTIFICATION_TYPES:
        raise PayloadValidationError(notification_type, [{"loc": ("type",), "msg": "unknown notification type"}])

    model = payload_model_for(notification_type)
    if isinstance(payload, model):
        return payload
    if isinstance(payload, NotificationPayload):
        payload = payload.model_dump()
    try:
        return model.model_validate(dict(payload))
    except ValidationError as e:
        raise PayloadValidationError(notification_type, e.errors()) from e
