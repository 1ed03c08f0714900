"""
Pytest configuration and fixtures for Tribunal tests.
"""

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
import pytest_asyncio

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from tribunal.configuration.voting_settings import VotingSettings  # noqa: E402
from tribunal.database.db_connection import ConnectionManager  # noqa: E402
from tribunal.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID  # noqa: E402
from tribunal.voting.vote_lifecycle import VoteLifecycle  # noqa: E402
from tribunal.voting.vote_store import VoteStore  # noqa: E402

GUILD = GuildID(1)
MOD_CHANNEL = ChannelID(500)
MOD_CHANNEL_NAME = "🧑‍⚖️︱moderación"
MEMBER_ROLE = "One Of Us"
BOOSTER_ROLE = "Server Booster"

INITIATOR = UserID(10)
TARGET = UserID(20)
ADMIN = UserID(30)


class FakeClock:
    """Callable clock the tests can move forward."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePlatform:
    """In-memory stand-in for the Discord platform adapter."""

    def __init__(self) -> None:
        self.members: dict[tuple[int, int], SimpleNamespace] = {}
        self.channels: dict[str, ChannelID] = {MOD_CHANNEL_NAME: MOD_CHANNEL}
        self.timeouts: list[tuple[int, int, str]] = []
        self.sent_embeds: list[tuple[ChannelID, MessageID, object]] = []
        self.messages: list[tuple[ChannelID, str]] = []
        self.edits: list[tuple[MessageID, object]] = []
        self.reactions_added: list[tuple[MessageID, str]] = []
        self.reactions_removed: list[tuple[MessageID, str, int]] = []
        self.dms: list[tuple[int, str]] = []
        self.fail_timeout_for: set[int] = set()
        self.fail_send = False
        self._next_message_id = 9000

    def add_member(self, user_id: UserID, *roles: str, admin: bool = False, guild_id: GuildID = GUILD):
        member = SimpleNamespace(id=user_id.to_int(), roles=set(roles), admin=admin)
        self.members[(guild_id.to_int(), user_id.to_int())] = member
        return member

    def timeouts_for(self, user_id: UserID) -> list[int]:
        return [seconds for uid, seconds, _ in self.timeouts if uid == user_id.to_int()]

    async def fetch_member(self, guild_id, user_id):
        return self.members.get((guild_id.to_int(), user_id.to_int()))

    def guild_name(self, guild_id) -> str:
        return "Test Guild"

    def has_role(self, member, role_name) -> bool:
        return role_name in member.roles

    def is_administrator(self, member) -> bool:
        return member.admin

    async def timeout(self, member, seconds, reason) -> None:
        if member.id in self.fail_timeout_for:
            raise RuntimeError("Missing Permissions")
        self.timeouts.append((member.id, seconds, reason))

    async def find_text_channel(self, guild_id, name):
        return self.channels.get(name)

    async def send_embed(self, channel_id, embed):
        if self.fail_send:
            raise RuntimeError("Cannot send messages in this channel")
        self._next_message_id += 1
        message_id = MessageID(self._next_message_id)
        self.sent_embeds.append((channel_id, message_id, embed))
        return message_id

    async def send_message(self, channel_id, content) -> None:
        self.messages.append((channel_id, content))

    async def edit_embed(self, channel_id, message_id, embed) -> None:
        self.edits.append((message_id, embed))

    async def add_reaction(self, channel_id, message_id, emoji) -> None:
        self.reactions_added.append((message_id, emoji))

    async def remove_reaction(self, channel_id, message_id, emoji, user_id) -> None:
        self.reactions_removed.append((message_id, emoji, user_id.to_int()))

    async def send_dm(self, user_id, content) -> bool:
        self.dms.append((user_id.to_int(), content))
        return True


@pytest_asyncio.fixture
async def db(tmp_path):
    manager = ConnectionManager()
    await manager.open(tmp_path / "tribunal-test.db")
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def store(db):
    return VoteStore(db)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def platform():
    fake = FakePlatform()
    fake.add_member(INITIATOR, MEMBER_ROLE)
    fake.add_member(TARGET, MEMBER_ROLE)
    fake.add_member(ADMIN, MEMBER_ROLE, admin=True)
    return fake


@pytest.fixture
def settings():
    return VotingSettings({})


@pytest_asyncio.fixture
async def lifecycle(store, platform, settings, clock):
    return VoteLifecycle(store, platform, settings, clock=clock)
