from fastapi import Request

from notifyhub.channels.base import ChannelSender
from notifyhub.services.order_hooks import OrderNotifiedHook
from notifyhub.services.outbox_store import OutboxStore


# Built once in the app lifespan and kept on app.state; tests override these.

async def get_outbox_store(request: Request) -> OutboxStore:
    return request.app.state.outbox_store


async def get_channel_sender(request: Request) -> ChannelSender:
    return request.app.state.channel_sender


async def get_order_hook(request: Request) -> OrderNotifiedHook | None:
    return getattr(request.app.state, "order_hook", None)
