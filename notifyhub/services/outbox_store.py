from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, insert, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notifyhub.core.ids import utcnow
from notifyhub.models.outbox import DEFAULT_MAX_ATTEMPTS, OUTBOX_DEAD, OUTBOX_PENDING, OUTBOX_SENT, NotificationOutbox


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimedNotification:
    """Detached snapshot of a row claimed by one drain invocation."""

    id: str
    organization_id: str
    order_id: str | None
    type: str
    trigger: str | None
    channel: str
    payload: Any  # as stored; decoded per row by the drain
    dedupe_key: str
    attempts: int
    max_attempts: int
    lease_id: str


def _lease_is_free(now: datetime):
    return or_(NotificationOutbox.lease_expires_at.is_(None), NotificationOutbox.lease_expires_at <= now)


class OutboxStore:
    """
    Durable notification outbox.

    The store is the only shared mutable state. It is built from an explicit
    session factory; nothing here holds a global engine.

    - insert_if_absent() never updates an existing row (dedupe_key is UNIQUE).
    - claim_due() hands out rows under a lease; outcome writes are guarded by
      the lease id so a drain that lost its lease cannot overwrite a newer owner.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        default_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.session_factory = session_factory
        # Retry budget stamped on rows whose enqueue call does not pass one
        self.default_max_attempts = default_max_attempts

    @classmethod
    def from_settings(cls, session_factory: async_sessionmaker[AsyncSession], settings) -> "OutboxStore":
        return cls(session_factory, default_max_attempts=settings.outbox_max_attempts)

    # ---- enqueue side -------------------------------------------------

    async def insert_if_absent(self, values: dict[str, Any]) -> bool:
        """Insert one row in its own transaction. Returns False if dedupe_key already exists."""
        async with self.session_factory() as db:
            async with db.begin():
                dialect = db.get_bind().dialect.name
                if dialect in ("postgresql", "sqlite"):
                    ins = postgresql.insert if dialect == "postgresql" else sqlite.insert
                    stmt = (
                        ins(NotificationOutbox)
                        .values(**values)
                        .on_conflict_do_nothing(index_elements=["dedupe_key"])
                        .returning(NotificationOutbox.id)
                    )
                    return (await db.execute(stmt)).scalar_one_or_none() is not None

                # Other dialects: rely on the unique constraint
                exists = (await db.execute(
                    select(NotificationOutbox.id).where(NotificationOutbox.dedupe_key == values["dedupe_key"])
                )).scalar_one_or_none()
                if exists:
                    return False
                try:
                    async with db.begin_nested():
                        await db.execute(insert(NotificationOutbox).values(**values))
                except IntegrityError:
                    return False
                return True

    async def get_by_dedupe_key(self, dedupe_key: str) -> NotificationOutbox | None:
        async with self.session_factory() as db:
            stmt = select(NotificationOutbox).where(NotificationOutbox.dedupe_key == dedupe_key)
            return (await db.execute(stmt)).scalar_one_or_none()

    async def get(self, outbox_id: str) -> NotificationOutbox | None:
        async with self.session_factory() as db:
            return await db.get(NotificationOutbox, outbox_id)

    # ---- drain side ---------------------------------------------------

    async def claim_due(self, *, limit: int, now: datetime | None = None, lease_seconds: int = 300) -> list[ClaimedNotification]:
        now = now or utcnow()
        lease_id = uuid.uuid4().hex
        expires_at = now + timedelta(seconds=lease_seconds)

        async with self.session_factory() as db:
            async with db.begin():
                # Lock and select due rows nobody else holds
                stmt = (
                    select(NotificationOutbox.id)
                    .where(
                        NotificationOutbox.status == OUTBOX_PENDING,
                        NotificationOutbox.next_attempt_at <= now,
                        _lease_is_free(now),
                    )
                    .order_by(NotificationOutbox.next_attempt_at.asc(), NotificationOutbox.created_at.asc())
                    .with_for_update(skip_locked=True)
                    .limit(limit)
                )
                ids = (await db.execute(stmt)).scalars().all()
                if not ids:
                    return []

                # Re-check the lease in the UPDATE so two overlapping drains cannot both win a row
                await db.execute(
                    update(NotificationOutbox)
                    .where(
                        NotificationOutbox.id.in_(ids),
                        NotificationOutbox.status == OUTBOX_PENDING,
                        _lease_is_free(now),
                    )
                    .values(lease_id=lease_id, lease_expires_at=expires_at)
                    .execution_options(synchronize_session=False)
                )

                rows = (await db.execute(
                    select(NotificationOutbox)
                    .where(NotificationOutbox.lease_id == lease_id)
                    .order_by(NotificationOutbox.next_attempt_at.asc(), NotificationOutbox.created_at.asc())
                )).scalars().all()

                return [
                    ClaimedNotification(
                        id=r.id,
                        organization_id=r.organization_id,
                        order_id=r.order_id,
                        type=r.type,
                        trigger=r.trigger,
                        channel=r.channel,
                        payload=r.payload,
                        dedupe_key=r.dedupe_key,
                        attempts=r.attempts,
                        max_attempts=r.max_attempts,
                        lease_id=lease_id,
                    )
                    for r in rows
                ]

    async def mark_sent(self, claimed: ClaimedNotification, *, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return await self._update_owned(
            claimed,
            status=OUTBOX_SENT,
            last_error=None,
            lease_id=None,
            lease_expires_at=None,
            updated_at=now,
        )

    async def mark_failed(
        self,
        claimed: ClaimedNotification,
        *,
        attempts: int,
        next_attempt_at: datetime,
        dead: bool,
        error: str,
        now: datetime | None = None,
    ) -> bool:
        now = now or utcnow()
        return await self._update_owned(
            claimed,
            attempts=attempts,
            next_attempt_at=next_attempt_at,
            status=OUTBOX_DEAD if dead else OUTBOX_PENDING,
            last_error=error,
            lease_id=None,
            lease_expires_at=None,
            updated_at=now,
        )

    async def _update_owned(self, claimed: ClaimedNotification, **values: Any) -> bool:
        async with self.session_factory() as db:
            async with db.begin():
                result = await db.execute(
                    update(NotificationOutbox)
                    .where(
                        NotificationOutbox.id == claimed.id,
                        NotificationOutbox.lease_id == claimed.lease_id,
                        NotificationOutbox.status == OUTBOX_PENDING,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                return int(result.rowcount or 0) == 1

    # ---- inspection ---------------------------------------------------

    async def status_counts(self, organization_id: str | None = None) -> list[tuple[str, str, int]]:
        async with self.session_factory() as db:
            stmt = (
                select(NotificationOutbox.status, NotificationOutbox.channel, func.count())
                .group_by(NotificationOutbox.status, NotificationOutbox.channel)
                .order_by(NotificationOutbox.status, NotificationOutbox.channel)
            )
            if organization_id:
                stmt = stmt.where(NotificationOutbox.organization_id == organization_id)
            return [(s, c, int(n)) for s, c, n in (await db.execute(stmt)).all()]
