from sqlalchemy import Boolean, String, false
from sqlalchemy.orm import Mapped, mapped_column

from notifyhub.core.ids import gen_id
from notifyhub.models.base import Base, TimestampMixin


class Order(TimestampMixin, Base):
    """Slice of the orders aggregate the outbox touches."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("ord"))
    organization_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    notified_paid_or_completed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
