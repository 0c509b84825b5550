from __future__ import annotations

import asyncio
from typing import Any, Dict, List

import pytest
import requests

from orderbot.backend import SECRET_HEADER, BackendClient, BackendError
from orderbot.messaging import (
    DiscordRestPlatform,
    PlatformError,
    PlatformNotFoundError,
    TransientPlatformError,
)


class _FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200, reason: str = "OK"):
        self._payload = payload
        self.status_code = status_code
        self.reason = reason

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class _FakeSession:
    def __init__(self, responses: List[Any]):
        self._responses = responses
        self.requests: List[Dict[str, Any]] = []
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> _FakeResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        if not self._responses:
            raise AssertionError("no more responses queued")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self) -> None:
        self.closed = True


def _platform(responses):
    session = _FakeSession(responses)
    platform = DiscordRestPlatform(
        bot_token="bot-token", application_id="app-1", guild_id="guild-1", session=session
    )
    return platform, session


API = "https://discord.com/api/v10"


def test_create_private_thread_sends_expected_request():
    platform, session = _platform(
        [_FakeResponse({"id": "t1", "name": "📦 Order-ABC123", "parent_id": "c1"}, 201)]
    )

    thread = asyncio.run(platform.create_private_thread("c1", "📦 Order-ABC123", reason="order"))

    assert thread.id == "t1"
    sent = session.requests[0]
    assert sent["method"] == "POST"
    assert sent["url"] == f"{API}/channels/c1/threads"
    assert sent["json"] == {
        "name": "📦 Order-ABC123",
        "type": 12,
        "auto_archive_duration": 10080,
        "invitable": False,
    }
    assert sent["headers"]["Authorization"] == "Bot bot-token"
    assert sent["headers"]["X-Audit-Log-Reason"] == "order"
    assert sent["timeout"] == 15.0


def test_list_threads_merges_active_and_archived_without_duplicates():
    active = {
        "threads": [
            {"id": "t1", "name": "📦 Order-AAA111", "parent_id": "c1"},
            {"id": "t9", "name": "elsewhere", "parent_id": "c2"},
        ]
    }
    archived_private = {
        "threads": [
            {
                "id": "t2",
                "name": "📦 Order-BBB222",
                "parent_id": "c1",
                "thread_metadata": {"archived": True, "locked": True, "archive_timestamp": "2026-10-01"},
            }
        ],
        "has_more": True,
    }
    archived_private_page2 = {
        "threads": [{"id": "t1", "name": "📦 Order-AAA111", "parent_id": "c1"}],
        "has_more": False,
    }
    platform, session = _platform(
        [
            _FakeResponse(active),
            _FakeResponse(archived_private),
            _FakeResponse(archived_private_page2),
            _FakeResponse({"message": "Unknown Channel"}, 404, "Not Found"),
        ]
    )

    threads = asyncio.run(platform.list_threads("c1"))

    assert [(t.id, t.archived, t.locked) for t in threads] == [
        ("t1", False, False),
        ("t2", True, True),
    ]
    assert session.requests[2]["params"] == {"limit": 100, "before": "2026-10-01"}
    assert session.requests[3]["url"].endswith("/threads/archived/public")


@pytest.mark.parametrize(
    "response, expected",
    [
        (_FakeResponse({"message": "You are being rate limited.", "retry_after": 2.5}, 429), TransientPlatformError),
        (_FakeResponse({"message": "Bad gateway"}, 502), TransientPlatformError),
        (_FakeResponse({"message": "Unknown Channel"}, 404), PlatformNotFoundError),
        (_FakeResponse({"message": "Missing Permissions"}, 403), PlatformError),
        (requests.Timeout("read timed out"), TransientPlatformError),
        (requests.ConnectionError("reset"), TransientPlatformError),
        (requests.exceptions.ChunkedEncodingError("connection broken mid-body"), TransientPlatformError),
        (requests.TooManyRedirects("redirect loop"), TransientPlatformError),
    ],
)
def test_errors_map_to_platform_exceptions(response, expected):
    platform, _ = _platform([response])

    with pytest.raises(expected) as excinfo:
        asyncio.run(platform.delete_thread("t1"))

    assert type(excinfo.value) is expected
    if isinstance(response, _FakeResponse) and response.status_code == 429:
        assert excinfo.value.retry_after == 2.5


def test_broken_response_body_on_send_is_platform_error():
    platform, _ = _platform([requests.exceptions.ChunkedEncodingError("connection broken mid-body")])

    with pytest.raises(PlatformError, match="connection broken"):
        asyncio.run(platform.send_message("c1", content="hi"))


def test_lookups_return_none_when_missing():
    platform, _ = _platform(
        [
            _FakeResponse({"message": "Unknown Member"}, 404),
            _FakeResponse({"message": "Unknown Channel"}, 404),
        ]
    )

    assert asyncio.run(platform.get_member("u1")) is None
    assert asyncio.run(platform.get_thread("t1")) is None


def test_list_role_members_paginates_and_filters():
    first_page = [
        {"user": {"id": str(n), "username": f"user{n}"}, "roles": ["staff"] if n % 500 == 0 else []}
        for n in range(1, 1001)
    ]
    second_page = [{"user": {"id": "2000", "username": "late"}, "roles": ["staff"]}]
    platform, session = _platform([_FakeResponse(first_page), _FakeResponse(second_page)])

    members = asyncio.run(platform.list_role_members("staff"))

    assert [m.id for m in members] == ["500", "1000", "2000"]
    assert session.requests[1]["params"] == {"limit": 1000, "after": "1000"}


def test_direct_messages_reuse_dm_channel():
    platform, session = _platform(
        [
            _FakeResponse({"id": "dm-1"}),
            _FakeResponse({"id": "m1", "channel_id": "dm-1"}),
            _FakeResponse({"id": "m2", "channel_id": "dm-1"}),
        ]
    )

    async def scenario():
        await platform.send_direct_message("u1", content="hi")
        await platform.send_direct_message("u1", embeds=[{"title": "x"}])

    asyncio.run(scenario())

    assert [r["url"] for r in session.requests] == [
        f"{API}/users/@me/channels",
        f"{API}/channels/dm-1/messages",
        f"{API}/channels/dm-1/messages",
    ]
    assert session.requests[2]["json"] == {"embeds": [{"title": "x"}]}


def test_create_channel_hides_it_from_everyone_but_staff():
    platform, session = _platform(
        [_FakeResponse({"id": "bot-9"}), _FakeResponse({"id": "c5"}, 201)]
    )

    channel = asyncio.run(
        platform.create_channel("order-saved", parent_id="cat-1", staff_role_id="staff", read_only_staff=True)
    )

    assert channel.id == "c5"
    body = session.requests[1]["json"]
    overwrites = {o["id"]: o for o in body["permission_overwrites"]}
    assert overwrites["guild-1"]["deny"] == str(1 << 10)
    assert overwrites["bot-9"]["type"] == 1
    assert overwrites["staff"]["deny"] == str(1 << 11)
    assert body["parent_id"] == "cat-1"


def test_grant_channel_permissions_puts_overwrite():
    platform, session = _platform([_FakeResponse(None, 204)])

    asyncio.run(
        platform.grant_channel_permissions(
            "c1", "bot-9", ["view_channel", "manage_threads", "create_private_threads"], member=True
        )
    )

    sent = session.requests[0]
    assert sent["method"] == "PUT"
    assert sent["url"] == f"{API}/channels/c1/permissions/bot-9"
    assert sent["json"] == {
        "type": 1,
        "allow": str((1 << 10) | (1 << 34) | (1 << 36)),
        "deny": "0",
    }


def test_grant_channel_permissions_rejects_unknown_name():
    platform, session = _platform([])

    with pytest.raises(ValueError):
        asyncio.run(platform.grant_channel_permissions("c1", "role-1", ["administrator"]))
    assert session.requests == []


def test_interaction_edit_does_not_send_bot_token():
    platform, session = _platform([_FakeResponse({"id": "m1"})])

    asyncio.run(platform.edit_interaction_response("tok", content="done"))

    sent = session.requests[0]
    assert sent["method"] == "PATCH"
    assert sent["url"] == f"{API}/webhooks/app-1/tok/messages/@original"
    assert "Authorization" not in sent["headers"]


def test_close_closes_session():
    platform, session = _platform([])
    asyncio.run(platform.close())
    assert session.closed


# ----------------------------------------------------------------------
# Backend client


def _backend(responses):
    session = _FakeSession(responses)
    return BackendClient("https://backend.test/", "s3cret", session=session), session


def test_backend_patch_sends_secret_header():
    client, session = _backend([_FakeResponse({"id": "ord_1", "discordId": "42"})])

    result = asyncio.run(client.patch_order("ord_1", {"discordId": "42"}))

    assert result["discordId"] == "42"
    sent = session.requests[0]
    assert sent["method"] == "PATCH"
    assert sent["url"] == "https://backend.test/api/orders/ord_1"
    assert sent["headers"] == {SECRET_HEADER: "s3cret"}
    assert sent["json"] == {"discordId": "42"}


def test_backend_delivery_state_and_get():
    client, session = _backend([_FakeResponse(None, 204), _FakeResponse({"status": "DELIVERED"})])

    async def scenario():
        await client.post_delivery_state("ord_1", action="DELIVERY_COMPLETED", step="COMPLETED")
        return await client.get_order("ord_1")

    assert asyncio.run(scenario()) == {"status": "DELIVERED"}
    assert session.requests[0]["url"] == "https://backend.test/api/orders/ord_1/delivery-state"
    assert session.requests[0]["json"] == {"action": "DELIVERY_COMPLETED", "step": "COMPLETED"}
    assert session.requests[1]["method"] == "GET"


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"message": "Order not found"}, "Order not found"),
        ({"error": "Unauthorized"}, "Unauthorized"),
        (None, "PATCH /api/orders/ord_1 returned 404"),
    ],
)
def test_backend_errors_carry_status_and_message(payload, message):
    client, _ = _backend([_FakeResponse(payload, 404)])

    with pytest.raises(BackendError) as excinfo:
        asyncio.run(client.patch_order("ord_1", {}))

    assert str(excinfo.value) == message
    assert excinfo.value.status_code == 404


def test_backend_network_failure_is_backend_error():
    client, _ = _backend([requests.ConnectionError("refused")])

    with pytest.raises(BackendError):
        asyncio.run(client.get_order("ord_1"))
