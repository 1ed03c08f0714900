"""Background sweep cog: periodically reconciles active votes with their deadlines."""

from __future__ import annotations

import discord
from discord.ext import commands, tasks

from tribunal.scheduler.completion_scheduler import CompletionScheduler
from tribunal.util.logger import get_logger

logger = get_logger("scheduler_cog")


class VoteSweepCog(commands.Cog):
    """
    Drives :meth:`CompletionScheduler.sweep` on a ``tasks.loop``.

    Votes are stored in SQLite, so a vote whose one-shot job was lost to a
    restart is still completed by the first sweep after it comes due.
    """

    def __init__(self, bot: discord.Bot, scheduler: CompletionScheduler, interval_seconds: float) -> None:
        self.bot = bot
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds

    # ------------------------------------------------------------------
    # Cog lifecycle
    # ------------------------------------------------------------------

    @commands.Cog.listener()
    async def on_ready(self) -> None:
        self._sweep_task.change_interval(seconds=self.interval_seconds)
        if not self._sweep_task.is_running():
            self._sweep_task.start()
        logger.info("[VOTE SWEEP] Ready (interval=%.1fs)", self.interval_seconds)

    def cog_unload(self) -> None:
        self._sweep_task.cancel()
        logger.info("[VOTE SWEEP] Stopped")

    # ------------------------------------------------------------------
    # Polling loop
    # ------------------------------------------------------------------

    @tasks.loop(seconds=30)  # real interval set in on_ready
    async def _sweep_task(self) -> None:
        await self.scheduler.sweep()

    @_sweep_task.before_loop
    async def _before_sweep(self) -> None:
        await self.bot.wait_until_ready()


def setup(bot: discord.Bot, scheduler: CompletionScheduler, interval_seconds: float) -> None:
    bot.add_cog(VoteSweepCog(bot, scheduler, interval_seconds))
