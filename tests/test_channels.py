import pytest

from notifyhub.channels.base import ChannelSendError
from notifyhub.channels.recording import RecordingSender
from notifyhub.channels.registry import ChannelRegistry, load_object


# Module-level sender so the import-path loader has something to find
EMAIL_SENDER = RecordingSender()


def make_webhook_sender() -> RecordingSender:
    return RecordingSender()


@pytest.mark.asyncio
async def test_registry_routes_to_channel_sender():
    email, telegram = RecordingSender(), RecordingSender()
    registry = ChannelRegistry({"email": email, "telegram": telegram})

    await registry.send("telegram", {"message": "hi"})

    assert email.calls == []
    assert telegram.sent_to("telegram") == [{"message": "hi"}]
    assert registry.channels == ["email", "telegram"]


@pytest.mark.asyncio
async def test_unregistered_channel_is_a_retryable_send_error():
    registry = ChannelRegistry()
    with pytest.raises(ChannelSendError) as exc:
        await registry.send("webhook", {"message": "hi"})
    assert exc.value.retryable is True
    assert exc.value.code == "NO_SENDER"


@pytest.mark.asyncio
async def test_from_import_paths_accepts_instances_and_factories():
    registry = ChannelRegistry.from_import_paths({
        "email": f"{__name__}:EMAIL_SENDER",
        "webhook": f"{__name__}:make_webhook_sender",
    })

    assert registry.get("email") is EMAIL_SENDER
    assert isinstance(registry.get("webhook"), RecordingSender)

    await registry.send("email", {"message": "x"})
    assert EMAIL_SENDER.sent_to("email")[-1] == {"message": "x"}


def test_load_object_rejects_bad_paths():
    with pytest.raises(ValueError):
        load_object("no_colon_here")


@pytest.mark.asyncio
async def test_recording_sender_fails_only_selected_channels():
    sender = RecordingSender(fail_with=RuntimeError("down"), fail_channels={"email"})

    await sender.send("in_app", {"message": "ok"})
    with pytest.raises(RuntimeError):
        await sender.send("email", {"message": "nope"})

    assert [c.channel for c in sender.calls] == ["in_app", "email"]
