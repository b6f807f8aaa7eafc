"""
tests/test_discord.py — Discord REST Client, Event Sync & Guild Links
=======================================================================
The REST client is exercised through ``httpx.MockTransport``; the sync
service runs against the in-memory database with the same fake Discord.
"""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import httpx
import pytest
from sqlalchemy.orm import Session

from conftest import add_member, make_org, make_user
from scorgs.clients.discord_api import (
    DISCORD_API,
    DiscordAPIError,
    DiscordRestClient,
    bot_token_from_env,
    build_scheduled_event_payload,
)
from scorgs.database.models import Organization
from scorgs.errors import ConflictError, NotFoundError, PermissionDeniedError
from scorgs.services import discord_service, discord_sync, event_service

GUILD_ID = "555000111"
START = datetime(2030, 5, 1, 20, 0, tzinfo=UTC)


class FakeDiscord:
    """Records requests and answers from a queue of canned responses."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: list[httpx.Response] = []
        self.next_id = 900

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responses:
            return self.responses.pop(0)
        if request.method == "DELETE":
            return httpx.Response(204)
        self.next_id += 1
        return httpx.Response(200, json={"id": str(self.next_id)})

    def client(self) -> DiscordRestClient:
        return DiscordRestClient("bot-token", client=httpx.AsyncClient(transport=httpx.MockTransport(self)))

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


# ===========================================================================
# Payload & client
# ===========================================================================
class TestScheduledEventPayload:

    def test_defaults(self):
        payload = build_scheduled_event_payload(title="Mining Op", start_time=START)
        assert payload == {
            "name": "Mining Op",
            "privacy_level": 2,
            "entity_type": 3,
            "scheduled_start_time": START.isoformat(),
            "scheduled_end_time": (START + timedelta(hours=1)).isoformat(),
            "entity_metadata": {"location": "Star Citizen"},
        }

    def test_truncation_and_optional_fields(self):
        payload = build_scheduled_event_payload(
            title="x" * 150,
            start_time=START,
            end_time=START + timedelta(hours=3),
            description="d" * 1500,
            location="Port Olisar",
        )
        assert len(payload["name"]) == 100
        assert len(payload["description"]) == 1000
        assert payload["entity_metadata"] == {"location": "Port Olisar"}
        assert payload["scheduled_end_time"] == (START + timedelta(hours=3)).isoformat()


class TestDiscordRestClient:

    def test_bot_auth_header_and_guild(self):
        fake = FakeDiscord()
        fake.responses.append(httpx.Response(200, json={"id": GUILD_ID, "name": "Test Guild"}))
        guild = asyncio.run(fake.client().get_guild(GUILD_ID))
        assert guild["name"] == "Test Guild"
        request = fake.requests[0]
        assert str(request.url) == f"{DISCORD_API}/guilds/{GUILD_ID}"
        assert request.headers["Authorization"] == "Bot bot-token"

    def test_scheduled_event_calls(self):
        fake = FakeDiscord()
        client = fake.client()

        async def scenario():
            created = await client.create_scheduled_event(GUILD_ID, title="Op", start_time=START)
            await client.update_scheduled_event(GUILD_ID, created["id"], title="Op 2", start_time=START)
            await client.delete_scheduled_event(GUILD_ID, created["id"])
            return created

        created = asyncio.run(scenario())
        assert [r.method for r in fake.requests] == ["POST", "PATCH", "DELETE"]
        assert fake.requests[1].url.path.endswith(f"/scheduled-events/{created['id']}")
        assert fake.body(1)["name"] == "Op 2"

    def test_send_message_truncates(self):
        fake = FakeDiscord()
        asyncio.run(fake.client().send_message("42", "y" * 2500))
        assert fake.requests[0].url.path == "/api/v10/channels/42/messages"
        assert len(fake.body()["content"]) == 2000

    def test_error_status_raises(self):
        fake = FakeDiscord()
        fake.responses.append(httpx.Response(403, json={"message": "Missing Permissions"}))
        with pytest.raises(DiscordAPIError) as exc_info:
            asyncio.run(fake.client().get_guild(GUILD_ID))
        assert exc_info.value.status_code == 403
        assert exc_info.value.message == "Missing Permissions"

    def test_error_without_json_body(self):
        fake = FakeDiscord()
        fake.responses.append(httpx.Response(502, text="bad gateway"))
        with pytest.raises(DiscordAPIError) as exc_info:
            asyncio.run(fake.client().get_guild(GUILD_ID))
        assert exc_info.value.message == "bad gateway"

    def test_transport_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        client = DiscordRestClient("t", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        with pytest.raises(DiscordAPIError) as exc_info:
            asyncio.run(client.get_guild(GUILD_ID))
        assert exc_info.value.status_code == 0

    def test_token_from_env(self):
        with patch.dict("os.environ", {"DISCORD_BOT_TOKEN": "abc"}, clear=True):
            assert bot_token_from_env() == "abc"
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(RuntimeError):
                bot_token_from_env()


# ===========================================================================
# Event sync
# ===========================================================================
class TestEventSync:

    @pytest.fixture(autouse=True)
    def _setup(self, db_engine, owner, org):
        self.engine = db_engine
        self.owner = owner
        self.org_id = org["id"]
        discord_service.link_server(
            db_engine, "TESTORG", owner, guild_id=GUILD_ID, guild_name="Test Guild",
        )
        self.event = event_service.create_event(
            db_engine, owner, title="Mining Op", start_time=START, organization_id=self.org_id,
        )
        self.fake = FakeDiscord()
        self.client = self.fake.client()

    def _sync(self, event_id: str | None = None) -> bool:
        return asyncio.run(discord_sync.sync_event(self.engine, self.client, event_id or self.event["id"]))

    def test_create_then_update(self):
        assert self._sync() is True
        assert self.fake.requests[0].method == "POST"
        assert self.fake.body(0)["scheduled_start_time"] == START.isoformat()
        assert discord_sync.sync_stats(self.engine)["synced"] == 1

        assert self._sync() is True
        assert self.fake.requests[1].method == "PATCH"
        assert self.fake.requests[1].url.path.endswith("/scheduled-events/901")

    def test_community_event_not_synced(self):
        community = event_service.create_event(self.engine, self.owner, title="Open Race", start_time=START)
        assert self._sync(community["id"]) is False
        assert self.fake.requests == []

    def test_unlinked_org_not_synced(self):
        discord_service.unlink_server(self.engine, "TESTORG", self.owner)
        assert self._sync() is False

    def test_failure_recorded_then_retried(self):
        self.fake.responses.append(httpx.Response(500, json={"message": "boom"}))
        assert self._sync() is False
        stats = discord_sync.sync_stats(self.engine, self.org_id)
        assert stats["failed"] == 1
        assert stats["total"] == 1

        result = asyncio.run(
            discord_sync.sync_pending_for_organization(self.engine, self.client, self.org_id)
        )
        assert result == {"attempted": 1, "synced": 1, "failed": 0}
        assert discord_sync.sync_stats(self.engine, self.org_id)["synced"] == 1

    def test_pending_skips_synced_events(self):
        self._sync()
        result = asyncio.run(
            discord_sync.sync_pending_for_organization(self.engine, self.client, self.org_id)
        )
        assert result["attempted"] == 0

    def test_cancelled_event_deletes_discord_side(self):
        self._sync()
        event_service.cancel_event(self.engine, self.event["id"], self.owner)
        assert asyncio.run(discord_sync.resync_if_mirrored(self.engine, self.client, self.event["id"]))
        assert self.fake.requests[-1].method == "DELETE"
        assert discord_sync.sync_stats(self.engine)["cancelled"] == 1

        # Already cancelled: nothing more to push.
        assert not asyncio.run(discord_sync.resync_if_mirrored(self.engine, self.client, self.event["id"]))

    def test_cancel_tolerates_missing_discord_event(self):
        self._sync()
        self.fake.responses.append(httpx.Response(404, json={"message": "Unknown Guild Scheduled Event"}))
        assert asyncio.run(discord_sync.cancel_event_sync(self.engine, self.client, self.event["id"]))
        assert discord_sync.sync_stats(self.engine)["cancelled"] == 1

    def test_cancel_failure_recorded(self):
        self._sync()
        self.fake.responses.append(httpx.Response(500, json={"message": "boom"}))
        assert not asyncio.run(discord_sync.cancel_event_sync(self.engine, self.client, self.event["id"]))
        assert discord_sync.sync_stats(self.engine)["failed"] == 1

    def test_resync_ignores_unmirrored(self):
        assert not asyncio.run(discord_sync.resync_if_mirrored(self.engine, self.client, self.event["id"]))
        assert self.fake.requests == []


# ===========================================================================
# Guild links
# ===========================================================================
class TestGuildLinks:

    @pytest.fixture(autouse=True)
    def _setup(self, db_engine, owner, org):
        self.engine = db_engine
        self.owner = owner
        self.org_id = org["id"]

    def _link(self, rsi="TESTORG", user=None, guild=GUILD_ID, name="Test Guild") -> dict:
        return discord_service.link_server(
            self.engine, rsi, user or self.owner, guild_id=guild, guild_name=name,
        )

    def _integration_enabled(self) -> bool:
        with Session(self.engine) as s:
            return s.get(Organization, self.org_id).discord_integration_enabled

    def test_link(self):
        linked = self._link()
        assert linked["discord_guild_id"] == GUILD_ID
        assert linked["rsi_org_id"] == "TESTORG"
        assert linked["auto_create_events"] is True
        assert self._integration_enabled() is True
        assert discord_service.get_server_for_org(self.engine, self.org_id)["guild_name"] == "Test Guild"
        assert discord_service.get_server_for_guild(self.engine, GUILD_ID)["organization_name"] == "Test Squadron"

    def test_guild_linked_elsewhere(self):
        self._link()
        other = make_user(self.engine, "Rival")
        make_org(self.engine, other, "RIVALS")
        with pytest.raises(ConflictError):
            self._link("RIVALS", other)

    def test_member_cannot_link(self):
        member = make_user(self.engine, "Grunt")
        add_member(self.engine, self.org_id, member)
        with pytest.raises(PermissionDeniedError):
            self._link(user=member)

    def test_unknown_org(self):
        with pytest.raises(NotFoundError):
            self._link("NOPE")

    def test_unlink_and_relink(self):
        first = self._link()
        discord_service.unlink_server(self.engine, "TESTORG", self.owner)
        assert discord_service.get_server_for_org(self.engine, self.org_id) is None
        assert self._integration_enabled() is False
        with pytest.raises(NotFoundError):
            discord_service.unlink_server(self.engine, "TESTORG", self.owner)

        again = self._link(guild="777", name="New Guild")
        assert again["id"] == first["id"]
        assert again["discord_guild_id"] == "777"

    def test_inactive_guild_can_move(self):
        self._link()
        discord_service.unlink_server(self.engine, "TESTORG", self.owner)
        other = make_user(self.engine, "Rival")
        rivals = make_org(self.engine, other, "RIVALS")
        moved = self._link("RIVALS", other)
        assert moved["organization_id"] == rivals["id"]

    def test_status(self):
        assert discord_service.server_status(self.engine, GUILD_ID) == {
            "connected": False, "guild_id": GUILD_ID,
        }
        self._link()
        status = discord_service.server_status(self.engine, GUILD_ID)
        assert status["connected"] is True
        assert status["rsi_org_id"] == "TESTORG"
        assert status["organization_name"] == "Test Squadron"

    def test_settings(self):
        self._link()
        updated = discord_service.update_server_settings(
            self.engine, "TESTORG", self.owner, auto_create_events=False, announcement_channel_id="123",
        )
        assert updated["auto_create_events"] is False
        assert updated["announcement_channel_id"] == "123"
        cleared = discord_service.update_server_settings(
            self.engine, "TESTORG", self.owner, announcement_channel_id="",
        )
        assert cleared["announcement_channel_id"] is None
        assert cleared["auto_create_events"] is False

    def test_settings_without_link(self):
        with pytest.raises(NotFoundError):
            discord_service.update_server_settings(self.engine, "TESTORG", self.owner, auto_create_events=True)

    def test_guild_lifecycle(self):
        self._link()
        assert discord_service.refresh_guild(self.engine, GUILD_ID, "Renamed", "https://cdn/icon.png")
        assert discord_service.get_server_for_guild(self.engine, GUILD_ID)["guild_icon_url"] == (
            "https://cdn/icon.png"
        )
        assert not discord_service.refresh_guild(self.engine, "999", "x", None)

        assert discord_service.deactivate_guild(self.engine, GUILD_ID) is True
        assert discord_service.deactivate_guild(self.engine, GUILD_ID) is False
        assert self._integration_enabled() is False

    def test_user_id_for_discord(self):
        assert discord_service.user_id_for_discord(self.engine, "discord-OrgOwner") == self.owner
        assert discord_service.user_id_for_discord(self.engine, "nobody") is None
