from datetime import datetime

from sqlalchemy import CheckConstraint, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime, Integer

from notifyhub.core.ids import gen_id
from notifyhub.models.base import Base, JsonDict, TimestampMixin


OUTBOX_PENDING = "pending"
OUTBOX_SENT = "sent"
OUTBOX_DEAD = "dead"

OUTBOX_STATUSES = (OUTBOX_PENDING, OUTBOX_SENT, OUTBOX_DEAD)

DEFAULT_MAX_ATTEMPTS = 8


class NotificationOutbox(TimestampMixin, Base):
    __tablename__ = "notification_outbox"
    __table_args__ = (
        UniqueConstraint("dedupe_key", name="uq_notification_outbox_dedupe_key"),
        CheckConstraint("status IN ('pending', 'sent', 'dead')", name="ck_notification_outbox_status"),
        Index("ix_notification_outbox_due", "status", "next_attempt_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("out"))

    organization_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    order_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)

    type: Mapped[str] = mapped_column(String(60), nullable=False)        # e.g. "order_paid"
    trigger: Mapped[str | None] = mapped_column(String(120), nullable=True)  # e.g. "admin_only"
    channel: Mapped[str] = mapped_column(String(30), nullable=False)     # email/in_app/webhook/telegram

    payload: Mapped[dict] = mapped_column(JsonDict, nullable=False, default=dict)
    dedupe_key: Mapped[str] = mapped_column(String(255), nullable=False)

    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_MAX_ATTEMPTS)
    next_attempt_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=OUTBOX_PENDING)  # pending/sent/dead

    # A pending row with a live lease is claimed by exactly one drain
    lease_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    lease_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
