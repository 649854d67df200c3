import pytest

from notifyhub.core.config import settings
from notifyhub.services.outbox_enqueue import enqueue_notification_fanout

from outbox_testing import INTERNAL_SECRET


async def _enqueue(store, order_id: str, channels=("telegram", "email")):
    await enqueue_notification_fanout(
        store,
        organization_id="org1",
        order_id=order_id,
        notification_type="order_paid",
        channels=list(channels),
        payload={"message": "Paid!"},
    )


@pytest.mark.asyncio
async def test_drain_requires_secret(client):
    r = await client.post("/v1/internal/notifications/drain")
    assert r.status_code == 401

    r = await client.post("/v1/internal/notifications/drain", headers={"X-Internal-Secret": "wrong"})
    assert r.status_code == 401

    r = await client.get("/v1/internal/notifications/drain")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_post_drain_with_header(client, store, sender, create_order, load_order):
    await create_order("ord1", "org1")
    await _enqueue(store, "ord1")

    r = await client.post("/v1/internal/notifications/drain", headers={"X-Internal-Secret": INTERNAL_SECRET})
    assert r.status_code == 200, r.text
    assert r.json() == {"done": 2, "sent": 2}

    assert len(sender.calls) == 2
    assert (await load_order("ord1")).notified_paid_or_completed is True


@pytest.mark.asyncio
async def test_get_drain_with_query_secret_and_limit(client, store, outbox_rows):
    for i in range(4):
        await _enqueue(store, f"ord{i}", channels=["email"])

    r = await client.get("/v1/internal/notifications/drain", params={"secret": INTERNAL_SECRET, "limit": 3})
    assert r.status_code == 200, r.text
    assert r.json() == {"done": 3, "sent": 3}
    assert len(await outbox_rows(status="pending")) == 1


@pytest.mark.asyncio
async def test_drain_limit_is_clamped(client, store):
    for i in range(3):
        await _enqueue(store, f"ord{i}", channels=["email"])

    r = await client.post(
        "/v1/internal/notifications/drain",
        params={"limit": 0},
        headers={"X-Internal-Secret": INTERNAL_SECRET},
    )
    assert r.json() == {"done": 1, "sent": 1}

    r = await client.post(
        "/v1/internal/notifications/drain",
        params={"limit": 10_000},
        headers={"X-Internal-Secret": INTERNAL_SECRET},
    )
    assert r.json() == {"done": 2, "sent": 2}


@pytest.mark.asyncio
async def test_stats_counts_by_status_and_channel(client, store, sender):
    await _enqueue(store, "ord1")
    sender.fail_with = RuntimeError("network down")
    sender.fail_channels = {"telegram"}

    r = await client.post("/v1/internal/notifications/drain", headers={"X-Internal-Secret": INTERNAL_SECRET})
    assert r.json() == {"done": 2, "sent": 1}

    r = await client.get("/v1/internal/notifications/stats", headers={"X-Internal-Secret": INTERNAL_SECRET})
    assert r.status_code == 200
    body = r.json()
    assert body["totals"] == {"pending": 1, "sent": 1}
    assert {(c["status"], c["channel"], c["count"]) for c in body["by_channel"]} == {
        ("pending", "telegram", 1),
        ("sent", "email", 1),
    }

    r = await client.get(
        "/v1/internal/notifications/stats",
        params={"organization_id": "other-org"},
        headers={"X-Internal-Secret": INTERNAL_SECRET},
    )
    assert r.json()["totals"] == {}


@pytest.mark.asyncio
async def test_configured_drain_max_limit_is_honoured(client, store, monkeypatch):
    monkeypatch.setattr(settings, "drain_max_limit", 60)
    for i in range(55):
        await _enqueue(store, f"ord{i}", channels=["email"])

    r = await client.post(
        "/v1/internal/notifications/drain",
        params={"limit": 10_000},
        headers={"X-Internal-Secret": INTERNAL_SECRET},
    )
    assert r.status_code == 200, r.text
    assert r.json() == {"done": 55, "sent": 55}
