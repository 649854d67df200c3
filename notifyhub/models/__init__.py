from notifyhub.models.base import Base  # noqa: F401

from notifyhub.models.order import Order  # noqa: F401
from notifyhub.models.outbox import NotificationOutbox  # noqa: F401
