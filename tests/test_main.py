from unittest.mock import MagicMock

import pytest

from tribunal import main as main_module
from tribunal.scheduler.completion_scheduler import CompletionScheduler
from tribunal.voting.platform import DiscordModerationPlatform


def test_build_intents_enables_members_and_reactions():
    intents = main_module.build_intents()
    assert intents.members is True
    assert intents.reactions is True
    assert intents.guilds is True


def test_build_lifecycle_wires_scheduler_and_platform():
    bot = MagicMock()
    lifecycle, scheduler = main_module.build_lifecycle(bot)

    assert isinstance(scheduler, CompletionScheduler)
    assert lifecycle.scheduler is scheduler
    assert scheduler.lifecycle is lifecycle
    assert isinstance(lifecycle.platform, DiscordModerationPlatform)
    assert lifecycle.platform.bot is bot


def test_load_environment_requires_token(monkeypatch):
    monkeypatch.setattr(main_module, "load_dotenv", lambda **kwargs: None)
    monkeypatch.delenv("DISCORD_BOT_TOKEN", raising=False)

    with pytest.raises(SystemExit):
        main_module.load_environment()


def test_load_environment_returns_token(monkeypatch):
    monkeypatch.setattr(main_module, "load_dotenv", lambda **kwargs: None)
    monkeypatch.setenv("DISCORD_BOT_TOKEN", "secret")

    assert main_module.load_environment() == "secret"


def test_load_cogs_registers_every_cog():
    bot = MagicMock()
    lifecycle, scheduler = main_module.build_lifecycle(bot)

    main_module.load_cogs(bot, lifecycle, scheduler)

    names = {type(call.args[0]).__name__ for call in bot.add_cog.call_args_list}
    assert names == {"EventsListenerCog", "ReactionListenerCog", "VoteSweepCog", "VoteCog"}
