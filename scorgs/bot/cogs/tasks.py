"""
scorgs.bot.cogs.tasks — Periodic Background Tasks
==================================================

Scheduled jobs that run on ``discord.ext.tasks`` loops inside the bot
process:

- **Event reminders** — every ``reminder_sweep_minutes`` (default 5),
  notifies registered attendees as their events approach.

Database work goes through ``run_db()`` so the event loop never blocks.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

from scorgs.database.engine import run_db
from scorgs.services.event_reminder_service import send_event_reminders

if TYPE_CHECKING:
    from scorgs.bot.core import ScorgsBot

logger = logging.getLogger(__name__)


class PeriodicTasks(commands.Cog):
    """Cog for scheduled background jobs."""

    def __init__(self, bot: ScorgsBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        self.reminder_loop.change_interval(minutes=self.bot.cfg.reminder_sweep_minutes)
        self.reminder_loop.start()

    async def cog_unload(self) -> None:
        self.reminder_loop.cancel()

    @tasks.loop(minutes=5)
    async def reminder_loop(self):
        """Send every event reminder that has come due."""
        try:
            result = await run_db(send_event_reminders, self.bot.engine)
        except Exception:
            logger.exception("Reminder sweep failed", extra={"task": "event_reminders"})
            return
        if result["sent"]:
            logger.info(
                "Reminder sweep: %d reminder(s) to %d attendee(s) across %d upcoming event(s)",
                result["sent"], result["notified"], result["checked"],
            )

    @reminder_loop.before_loop
    async def _wait_reminders(self):
        await self.bot.wait_until_ready()


async def setup(bot: ScorgsBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))
