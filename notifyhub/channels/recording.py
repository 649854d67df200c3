from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class SentMessage:
    channel: str
    message: dict[str, Any]


@dataclass
class RecordingSender:
    """
    In-memory sender for development and tests.

    Records every call. `fail_with` makes every call raise that exception;
    `fail_channels` restricts failures to those channels.
    """

    fail_with: BaseException | None = None
    fail_channels: set[str] | None = None
    calls: list[SentMessage] = field(default_factory=list)

    async def send(self, channel: str, message: dict[str, Any]) -> None:
        self.calls.append(SentMessage(channel=channel, message=dict(message)))
        if self.fail_with is not None and (self.fail_channels is None or channel in self.fail_channels):
            raise self.fail_with

    def sent_to(self, channel: str) -> list[dict[str, Any]]:
        return [c.message for c in self.calls if c.channel == channel]
