import asyncio

import pytest

from orderbot.backend import BackendError
from orderbot.messaging import Message, PlatformError, TransientPlatformError
from orderbot.orders.embeds import INSTRUCTION_TITLE, ORDER_DETAILS_TITLE
from orderbot.orders.models import Order
from orderbot.threads import ClaimChannelNotFoundError
from tests.fakes import STAFF_ROLE, FakeBackend, FakePlatform, make_guild, make_orchestrator


def _order(**overrides):
    values = {
        "order_id": "ord_abc123",
        "user_id": "cust-1",
        "email": "buyer@example.com",
        "product_summary": "Dragon Pet",
        "total_paid": 19.99,
        "discount_amount": 5.0,
    }
    values.update(overrides)
    return Order(**values)


def _world(**settings):
    platform = FakePlatform()
    backend = FakeBackend()
    channels = make_guild(platform)
    customer = platform.add_member("cust-1", "buyer")
    platform.add_member("staff-1", "alice", STAFF_ROLE)
    platform.add_member("staff-2", "bob", STAFF_ROLE)
    orchestrator = make_orchestrator(platform, backend, **settings)
    return platform, backend, channels, customer, orchestrator


def test_create_populates_thread_and_links_backend():
    platform, backend, channels, customer, orch = _world()

    async def scenario():
        thread = await orch.controller.create(customer, _order())
        active = orch.keepalive.is_active("ord_abc123")
        orch.keepalive.stop_all()
        return thread, active

    thread, keepalive_active = asyncio.run(scenario())

    assert thread.name == "📦 Order-ABC123"
    assert thread.parent_id == channels["claim"].id
    assert platform.thread_members[thread.id] == ["bot-1", "cust-1", "staff-1", "staff-2"]

    messages = platform.thread_messages(thread.id)
    assert messages[0].embeds[0]["title"] == INSTRUCTION_TITLE
    assert messages[1].embeds[0]["title"] == ORDER_DETAILS_TITLE
    assert messages[2].content == (
        f"<@cust-1> 👋 Your order thread is ready! <@&{STAFF_ROLE}> 🔔 New order!"
    )

    assert backend.patches("ord_abc123") == [
        {
            "discordThreadId": thread.id,
            "discordThreadUrl": f"https://discord.com/channels/guild-1/{thread.id}",
        }
    ]
    assert keepalive_active
    assert len(orch.locks) == 0


def test_create_twice_in_sequence_leaves_one_thread():
    platform, _, channels, customer, orch = _world()
    stale = platform.add_thread(channels["claim"].id, "📦 Order-ABC123", archived=True)

    async def scenario():
        first = await orch.controller.create(customer, _order())
        second = await orch.controller.create(customer, _order())
        orch.keepalive.stop_all()
        return first, second

    first, second = asyncio.run(scenario())

    survivors = platform.threads_named("ABC123")
    assert [t.id for t in survivors] == [second.id]
    assert stale.id in platform.deleted_threads
    assert first.id in platform.deleted_threads


def test_concurrent_create_yields_single_thread():
    platform, _, _, customer, orch = _world()

    async def scenario():
        results = await asyncio.gather(
            orch.controller.create(customer, _order()),
            orch.controller.create(customer, _order()),
        )
        orch.keepalive.stop_all()
        return results

    results = asyncio.run(scenario())

    created = [r for r in results if r is not None]
    assert len(created) == 1
    assert results.count(None) == 1
    assert [t.id for t in platform.threads_named("ABC123")] == [created[0].id]
    assert len(orch.locks) == 0


def test_failed_creation_releases_lock():
    platform, _, _, customer, orch = _world(retry_max_attempts=2)
    platform.fail_when(
        "create_private_thread", TransientPlatformError("gateway timeout", status_code=504), times=2
    )

    async def scenario():
        with pytest.raises(TransientPlatformError):
            await orch.controller.create(customer, _order())
        assert not orch.locks.is_held(("cust-1", "ord_abc123"))
        thread = await orch.controller.create(customer, _order())
        orch.keepalive.stop_all()
        return thread

    thread = asyncio.run(scenario())

    assert thread is not None
    assert platform.threads_named("ABC123") == [platform.threads[thread.id]]


def test_missing_claim_channel_is_precondition_error():
    platform = FakePlatform()
    customer = platform.add_member("cust-1")
    orch = make_orchestrator(platform)

    async def scenario():
        with pytest.raises(ClaimChannelNotFoundError):
            await orch.controller.create(customer, _order())

    asyncio.run(scenario())

    assert len(orch.locks) == 0
    assert platform.mutations == []


def test_configured_claim_channel_id_wins_over_name():
    platform, _, _, customer, _ = _world()
    custom = platform.add_channel("orders-private")
    orch = make_orchestrator(platform, FakeBackend(), claim_channel_id=custom.id)

    async def scenario():
        thread = await orch.controller.create(customer, _order())
        orch.keepalive.stop_all()
        return thread

    assert asyncio.run(scenario()).parent_id == custom.id


def test_member_add_and_backend_failures_do_not_abort_creation():
    platform, backend, _, customer, orch = _world()
    platform.fail_when(
        "add_thread_member",
        PlatformError("Missing Access", status_code=403),
        predicate=lambda thread_id, user_id: user_id == "staff-1",
    )
    backend.fail["patch_order"] = BackendError("backend down", status_code=503)

    async def scenario():
        thread = await orch.controller.create(customer, _order())
        orch.keepalive.stop_all()
        return thread

    thread = asyncio.run(scenario())

    assert platform.thread_members[thread.id] == ["bot-1", "cust-1", "staff-2"]
    assert len(platform.thread_messages(thread.id)) == 3


def test_complete_logs_notifies_and_archives_without_deleting():
    platform, backend, channels, customer, orch = _world()

    async def scenario():
        thread = await orch.controller.create(customer, _order())
        processed = await orch.controller.complete("ord_abc123", "staff-1")
        return thread, processed

    thread, processed = asyncio.run(scenario())

    assert processed == 1
    stored = platform.threads[thread.id]
    assert stored.archived and stored.locked
    assert thread.id not in platform.deleted_threads
    assert not orch.keepalive.is_active("ord_abc123")

    log_channel = next(c for c in platform.channels.values() if c.name == "order-saved")
    assert log_channel.parent_id == channels["dashboard"].id
    log_embed = platform.thread_messages(log_channel.id)[0].embeds[0]
    assert log_embed["title"] == "✅ Order Delivered & Archived"
    names = [field["name"] for field in log_embed["fields"]]
    assert names.count("📦 Order ID") == 1
    assert "📋 Order ID" not in names
    assert "💰 Total Paid" in names

    delivered = platform.thread_messages(thread.id)[-1].embeds[0]
    assert delivered["title"] == "🎉 ORDER DELIVERED!"
    customer_dms = platform.dms_to("cust-1")
    assert len(customer_dms) == 1
    assert customer_dms[0].embeds[0]["title"] == "🎉 ORDER DELIVERED!"
    assert platform.dms_to("staff-1") == []

    edits = [m[2] for m in platform.mutations if m[0] == "edit_thread"]
    assert edits == [{"locked": True}, {"archived": True}]


def test_complete_processes_every_duplicate_and_isolates_failures():
    platform, _, channels, _, orch = _world()
    claim = channels["claim"].id
    broken = platform.add_thread(claim, "📦 Order-ABC123")
    crashing = platform.add_thread(claim, "ABC123 retry")
    healthy = platform.add_thread(claim, "Order-ABC123 (old)", archived=True)
    platform.thread_members[healthy.id].append("cust-1")
    platform.fail_when(
        "send_message",
        PlatformError("Missing Access", status_code=403),
        predicate=lambda channel_id, **kwargs: channel_id == broken.id,
    )
    platform.fail_when(
        "fetch_messages",
        KeyError("id"),
        predicate=lambda channel_id: channel_id == crashing.id,
    )

    processed = asyncio.run(orch.controller.complete("ord_abc123", "staff-1"))

    assert processed == 1
    assert platform.threads[healthy.id].locked and platform.threads[healthy.id].archived
    assert not platform.threads[broken.id].archived
    assert not platform.threads[crashing.id].archived
    assert broken.id not in platform.deleted_threads


def test_complete_without_claim_channel_returns_zero():
    platform = FakePlatform()
    orch = make_orchestrator(platform)

    assert asyncio.run(orch.controller.complete("ord_abc123", "staff-1")) == 0


def test_post_to_order_thread_unarchives_first():
    platform, _, channels, _, orch = _world()
    thread = platform.add_thread(channels["claim"].id, "📦 Order-ABC123", archived=True)

    result = asyncio.run(
        orch.controller.post_to_order_thread("ord_abc123", {"title": "📨 Message from Staff"})
    )

    assert result.id == thread.id
    assert platform.threads[thread.id].archived is False
    assert platform.thread_messages(thread.id)[0].embeds[0]["title"] == "📨 Message from Staff"


def test_post_to_order_thread_without_match_returns_none():
    platform, _, _, _, orch = _world()

    assert asyncio.run(orch.controller.post_to_order_thread("ord_zzz999", {})) is None
    assert platform.mutations == []


def test_sweep_deletes_only_threads_without_order_content():
    platform, _, channels, _, orch = _world()
    claim = channels["claim"].id
    empty = platform.add_thread(claim, "📦 Order-EMPTY1")
    kept = platform.add_thread(claim, "📦 Order-KEPT01")
    platform.messages[kept.id].append(
        Message(id="seed-1", channel_id=kept.id, embeds=[{"title": ORDER_DETAILS_TITLE}])
    )

    deleted = asyncio.run(orch.controller.sweep_empty_threads())

    assert deleted == 1
    assert empty.id in platform.deleted_threads
    assert kept.id in platform.threads
