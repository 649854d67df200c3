from __future__ import annotations


class OutboxError(Exception):
    """Base class for notification outbox errors."""


class PayloadValidationError(OutboxError, ValueError):
    """Raised at enqueue time when a payload does not match its notification type."""

    def __init__(self, notification_type: str, errors: list[dict] | None = None):
        self.notification_type = notification_type
        self.errors = errors or []
        fields = ", ".join(".".join(str(p) for p in e.get("loc", ())) for e in self.errors) or "payload"
        super().__init__(f"invalid payload for {notification_type}: {fields}")


class StoredPayloadError(OutboxError, ValueError):
    """A claimed row's payload cannot be turned back into a message object."""

    # Retrying will not repair the stored bytes
    retryable = False
