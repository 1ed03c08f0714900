"""
Tribunal Community Vote Bot
===========================

A Discord bot that lets trusted community members put a disruptive member
to a reaction vote. When the vote closes, the weighted result decides
whether the member is timed out and for how long.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. TRIBUNAL_HOME environment variable, if set.
    2. If running in a frozen/compiled context (e.g., PyInstaller, Nuitka), use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("TRIBUNAL_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
import discord
from dotenv import load_dotenv

from tribunal.configuration.app_configuration import app_config
from tribunal.database.db_connection import db_connection
from tribunal.scheduler.completion_scheduler import CompletionScheduler
from tribunal.util.logger import get_logger, handle_exception
from tribunal.voting.platform import DiscordModerationPlatform
from tribunal.voting.vote_lifecycle import VoteLifecycle
from tribunal.voting.vote_store import VoteStore


logger = get_logger("main")


def load_environment() -> str:
    """Load environment variables and return the Discord bot token.

    Returns
    -------
    str
        Discord bot token extracted from the loaded environment.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Construct the Discord intents the vote engine needs.

    Returns
    -------
    discord.Intents
        Intents enabling guild, member, and reaction events.
    """
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True
    intents.reactions = True
    return intents


def build_lifecycle(bot: discord.Bot) -> tuple[VoteLifecycle, CompletionScheduler]:
    """Wire the store, platform adapter, lifecycle and scheduler together."""
    lifecycle = VoteLifecycle(VoteStore(db_connection), DiscordModerationPlatform(bot), app_config.voting)
    scheduler = CompletionScheduler(lifecycle)
    lifecycle.scheduler = scheduler
    return lifecycle, scheduler


def load_cogs(bot: discord.Bot, lifecycle: VoteLifecycle, scheduler: CompletionScheduler) -> None:
    """Register all operational cogs with the provided Discord bot instance."""
    from tribunal.cog.commands import vote_cmds
    from tribunal.cog.listener import events_listener, reaction_listener, scheduler_cog

    events_listener.setup(bot)
    reaction_listener.setup(bot, lifecycle)
    scheduler_cog.setup(bot, scheduler, app_config.voting.sweep_interval_seconds)
    vote_cmds.setup(bot, lifecycle)

    logger.info("All cogs loaded successfully.")


def create_bot() -> tuple[discord.Bot, CompletionScheduler]:
    """Instantiate the Discord bot and register all cogs."""
    bot = discord.Bot(intents=build_intents())
    lifecycle, scheduler = build_lifecycle(bot)
    load_cogs(bot, lifecycle, scheduler)
    return bot, scheduler


async def start_bot(bot: discord.Bot, token: str) -> None:
    """Start the Discord bot and log around the connection."""
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(bot: discord.Bot | None, scheduler: CompletionScheduler | None) -> None:
    """Stop the scheduler, close the bot, and close the database."""
    if scheduler is not None:
        try:
            await scheduler.shutdown()
        except Exception as exc:
            logger.exception("Error during scheduler shutdown: %s", exc)

    if bot is not None and not bot.is_closed():
        try:
            await bot.close()
        except Exception as exc:
            logger.exception("Error while closing the Discord client: %s", exc)

    await db_connection.close()
    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the database and the bot, returning an exit code."""
    token = load_environment()

    try:
        logger.info("Opening database at %s", app_config.database_path)
        await db_connection.open(app_config.database_path)
    except Exception as exc:
        logger.critical("Failed to initialize database: %s", exc)
        return 1

    try:
        bot, scheduler = create_bot()
    except Exception as exc:
        logger.critical("Failed to initialize Discord bot: %s", exc)
        await db_connection.close()
        return 1

    exit_code = 0
    try:
        await start_bot(bot, token)
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot, scheduler)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process code."""
    logger.info("Starting Tribunal…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.excepthook = handle_exception
    print(f"Exited with code: {main()}")
