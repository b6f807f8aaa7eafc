"""
scorgs.clients.discord_api — Discord REST client (bot token)
=============================================================

Thin async wrapper over the handful of Discord v10 endpoints the platform
uses: guild lookup, guild scheduled events, and channel messages.

Scheduled events are always created as ``EXTERNAL`` (entity type 3) with
``GUILD_ONLY`` privacy (2), because they describe in-game activity rather
than a voice or stage channel.  Discord requires an end time for external
events, so one hour after the start is used when the event has none.

Errors are raised as :class:`DiscordAPIError` carrying the HTTP status so
the sync service can record them on ``discord_events.sync_error``.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DISCORD_API = "https://discord.com/api/v10"
REQUEST_TIMEOUT_SECONDS = 10

PRIVACY_GUILD_ONLY = 2
ENTITY_TYPE_EXTERNAL = 3
DEFAULT_EVENT_DURATION = timedelta(hours=1)
MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 1000


class DiscordAPIError(Exception):
    """A Discord REST call failed."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Discord API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


def bot_token_from_env() -> str:
    token = os.getenv("DISCORD_BOT_TOKEN") or os.getenv("DISCORD_TOKEN") or ""
    if not token:
        raise RuntimeError("DISCORD_BOT_TOKEN is not set.")
    return token


def build_scheduled_event_payload(
    *,
    title: str,
    start_time: datetime,
    end_time: datetime | None = None,
    description: str | None = None,
    location: str | None = None,
) -> dict[str, Any]:
    """JSON body for ``POST /guilds/{id}/scheduled-events``."""
    end_time = end_time or start_time + DEFAULT_EVENT_DURATION
    payload: dict[str, Any] = {
        "name": title[:MAX_NAME_LENGTH],
        "privacy_level": PRIVACY_GUILD_ONLY,
        "entity_type": ENTITY_TYPE_EXTERNAL,
        "scheduled_start_time": start_time.isoformat(),
        "scheduled_end_time": end_time.isoformat(),
        "entity_metadata": {"location": (location or "Star Citizen")[:MAX_NAME_LENGTH]},
    }
    if description:
        payload["description"] = description[:MAX_DESCRIPTION_LENGTH]
    return payload


class DiscordRestClient:
    """Bot-authenticated Discord REST client.

    Parameters
    ----------
    token:
        Bot token (without the ``Bot`` prefix).
    client:
        Optional :class:`httpx.AsyncClient`; tests pass one built on a
        ``MockTransport``.  When omitted a client is opened per request.
    """

    def __init__(self, token: str, client: httpx.AsyncClient | None = None) -> None:
        self._token = token
        self._client = client

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bot {self._token}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, json: dict | None = None) -> Any:
        url = f"{DISCORD_API}{path}"
        try:
            if self._client is not None:
                resp = await self._client.request(method, url, headers=self.headers, json=json)
            else:
                transport = httpx.AsyncHTTPTransport(retries=1)
                async with httpx.AsyncClient(
                    timeout=REQUEST_TIMEOUT_SECONDS, transport=transport,
                ) as client:
                    resp = await client.request(method, url, headers=self.headers, json=json)
        except httpx.HTTPError as exc:
            logger.error("Discord %s %s failed: %s", method, path, exc)
            raise DiscordAPIError(0, str(exc)) from exc

        if resp.status_code >= 400:
            try:
                message = resp.json().get("message", resp.text)
            except ValueError:
                message = resp.text
            logger.warning("Discord %s %s → %d: %s", method, path, resp.status_code, message)
            raise DiscordAPIError(resp.status_code, message)

        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    # -- Guilds ------------------------------------------------------------
    async def get_guild(self, guild_id: str) -> dict:
        return await self._request("GET", f"/guilds/{guild_id}")

    # -- Scheduled events --------------------------------------------------
    async def create_scheduled_event(
        self,
        guild_id: str,
        *,
        title: str,
        start_time: datetime,
        end_time: datetime | None = None,
        description: str | None = None,
        location: str | None = None,
    ) -> dict:
        payload = build_scheduled_event_payload(
            title=title,
            start_time=start_time,
            end_time=end_time,
            description=description,
            location=location,
        )
        return await self._request("POST", f"/guilds/{guild_id}/scheduled-events", payload)

    async def update_scheduled_event(
        self,
        guild_id: str,
        discord_event_id: str,
        *,
        title: str,
        start_time: datetime,
        end_time: datetime | None = None,
        description: str | None = None,
        location: str | None = None,
    ) -> dict:
        payload = build_scheduled_event_payload(
            title=title,
            start_time=start_time,
            end_time=end_time,
            description=description,
            location=location,
        )
        return await self._request(
            "PATCH", f"/guilds/{guild_id}/scheduled-events/{discord_event_id}", payload,
        )

    async def delete_scheduled_event(self, guild_id: str, discord_event_id: str) -> None:
        await self._request("DELETE", f"/guilds/{guild_id}/scheduled-events/{discord_event_id}")

    # -- Messages ----------------------------------------------------------
    async def send_message(self, channel_id: str, content: str) -> dict:
        return await self._request(
            "POST", f"/channels/{channel_id}/messages", {"content": content[:2000]},
        )
