from typing import Any, Protocol

from notifyhub.core.errors import OutboxError


class ChannelSendError(OutboxError):
    """
    Raised by a sender when one delivery fails.

    retryable=False marks a permanent failure (bad recipient, revoked bot
    token, ...) and dead-letters the row without burning the retry budget.
    """

    def __init__(self, message: str, *, retryable: bool = True, code: str | None = None):
        super().__init__(message)
        self.retryable = retryable
        self.code = code


class ChannelSender(Protocol):
    async def send(self, channel: str, message: dict[str, Any]) -> None:
        """Deliver `message` on exactly one channel; raise on failure."""
        ...
