from __future__ import annotations

import importlib
import logging
from typing import Any, Mapping

from notifyhub.channels.base import ChannelSendError, ChannelSender


log = logging.getLogger(__name__)


def load_object(path: str) -> Any:
    # "package.module:attr"
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Invalid import path (expected 'module:attr'): {path}")
    return getattr(importlib.import_module(module_name), attr)


class ChannelRegistry:
    """Routes each send to the sender registered for its channel."""

    def __init__(self, senders: Mapping[str, ChannelSender] | None = None):
        self._senders: dict[str, ChannelSender] = dict(senders or {})

    @classmethod
    def from_import_paths(cls, paths: Mapping[str, str]) -> "ChannelRegistry":
        senders: dict[str, ChannelSender] = {}
        for channel, path in paths.items():
            obj = load_object(path)
            # Accept either a ready sender or a zero-arg factory
            senders[channel] = obj if hasattr(obj, "send") else obj()
            log.info("channel registry: %s -> %s", channel, path)
        return cls(senders)

    def register(self, channel: str, sender: ChannelSender) -> None:
        self._senders[channel] = sender

    @property
    def channels(self) -> list[str]:
        return sorted(self._senders)

    def get(self, channel: str) -> ChannelSender:
        if channel not in self._senders:
            raise KeyError(f"Unknown channel: {channel}")
        return self._senders[channel]

    async def send(self, channel: str, message: dict[str, Any]) -> None:
        try:
            sender = self.get(channel)
        except KeyError:
            # Retryable: a config fix recovers queued rows within their budget
            raise ChannelSendError(f"no sender registered for channel {channel}", retryable=True, code="NO_SENDER") from None
        await sender.send(channel, message)
