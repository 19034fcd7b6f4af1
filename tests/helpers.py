from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import AsyncIterator

from raidbot.config import RaidSettings
from raidbot.db.session import dispose_db, init_db
from raidbot.engine import RaidEngine
from raidbot.gateway import DirectReply
from raidbot.errors import ChannelNotFound, GatewayFailure, MemberNotFound, MessageNotFound
from raidbot.raid import Attendee, AttendeeStatus, MessageRef, Raid, Subject
from raidbot.registry import RaidRegistry
from raidbot.store import RaidStore
from raidbot.venues import StaticVenueDirectory, Venue

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
SOURCE = 500
CREATOR = 1
DM_CHANNEL_BASE = 9000

VENUES = StaticVenueDirectory(
    [
        Venue(id="g1", name="Town Fountain", latitude=51.5, longitude=-0.12),
        Venue(
            id="g2",
            name="Old Public Library",
            nickname="Library",
            latitude=51.6,
            longitude=-0.11,
            additional_information="Enter from the park side.",
        ),
    ]
)


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeGateway:
    """In-memory stand-in for Discord."""

    def __init__(self, channels=(SOURCE,)) -> None:
        self.channels: set[int] = set(channels)
        self.channel_names: dict[int, str] = {}
        self.messages: dict[MessageRef, dict] = {}
        self.members: dict[int, SimpleNamespace] = {}
        self.replies: dict[int, object] = {}
        self.pinned: set[MessageRef] = set()
        self.sent: list[tuple[int, str | None]] = []
        self.edited: list[MessageRef] = []
        self.asked: list[tuple[int, str, float]] = []
        self.reactions: list[tuple[MessageRef, str]] = []
        self.deleted_channels: list[int] = []
        self.fail_sends = False
        self._next_id = 1000
        self.add_member(CREATOR, "Ash")

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def add_member(self, member_id: int, name: str, roles=()) -> SimpleNamespace:
        member = SimpleNamespace(id=member_id, display_name=name, roles=list(roles))
        self.members[member_id] = member
        return member

    def post(self, channel_id: int, content: str = "") -> MessageRef:
        ref = MessageRef(channel_id, self._new_id())
        self.messages[ref] = {"content": content, "embed": None}
        return ref

    async def get_channel(self, channel_id: int):
        if channel_id not in self.channels:
            raise ChannelNotFound(channel_id)
        return SimpleNamespace(id=channel_id, name=self.channel_names.get(channel_id))

    async def fetch_message(self, ref: MessageRef):
        await self.get_channel(ref.channel_id)
        if ref not in self.messages:
            raise MessageNotFound(ref)
        return self.messages[ref]

    async def send_message(self, channel_id, content=None, embed=None) -> MessageRef:
        await self.get_channel(channel_id)
        if self.fail_sends:
            raise GatewayFailure("send failed")
        ref = MessageRef(channel_id, self._new_id())
        self.messages[ref] = {"content": content, "embed": embed}
        self.sent.append((channel_id, content))
        return ref

    async def edit_message(self, ref, content=None, embed=None) -> None:
        await self.fetch_message(ref)
        self.messages[ref] = {"content": content, "embed": embed}
        self.edited.append(ref)

    async def delete_message(self, ref) -> None:
        await self.fetch_message(ref)
        del self.messages[ref]

    async def pin_message(self, ref) -> None:
        await self.fetch_message(ref)
        self.pinned.add(ref)

    async def add_reaction(self, ref, emoji) -> None:
        await self.fetch_message(ref)
        self.reactions.append((ref, emoji))

    async def rename_channel(self, channel_id, name) -> None:
        await self.get_channel(channel_id)
        self.channel_names[channel_id] = name

    async def clone_channel(self, channel_id, name) -> int:
        await self.get_channel(channel_id)
        new_id = self._new_id()
        self.channels.add(new_id)
        self.channel_names[new_id] = name
        return new_id

    async def delete_channel(self, channel_id) -> None:
        await self.get_channel(channel_id)
        self.channels.discard(channel_id)
        self.deleted_channels.append(channel_id)

    async def get_member(self, member_id):
        if member_id not in self.members:
            raise MemberNotFound(member_id)
        return self.members[member_id]

    async def ask(self, member_id, prompt, timeout):
        await self.get_member(member_id)
        self.asked.append((member_id, prompt, timeout))
        reply = self.replies.get(member_id)
        if isinstance(reply, asyncio.Event):
            await reply.wait()
            reply = "yes"
        if isinstance(reply, BaseException):
            raise reply
        if reply is None:
            return None
        dm_channel = DM_CHANNEL_BASE + member_id
        self.channels.add(dm_channel)
        ref = MessageRef(dm_channel, self._new_id())
        self.messages[ref] = {"content": reply, "embed": None}
        return DirectReply(reply, ref)


def make_raid(
    channel_id: int = 100,
    *,
    created: datetime = T0,
    name: str | None = "mewtwo",
    tier: int | None = 5,
    venue_id: str = "g1",
    lifetime: timedelta = timedelta(minutes=120),
    attendees: dict[int, Attendee] | None = None,
    **fields,
) -> Raid:
    return Raid(
        channel_id=channel_id,
        source_channel_id=SOURCE,
        created_by=CREATOR,
        creation_time=created,
        subject=Subject(name=name, tier=tier),
        venue_id=venue_id,
        last_possible_time=created + lifetime,
        attendees=attendees
        if attendees is not None
        else {CREATOR: Attendee(1, AttendeeStatus.INTERESTED)},
        **fields,
    )


@asynccontextmanager
async def fresh_store() -> AsyncIterator[RaidStore]:
    await dispose_db()
    await init_db("sqlite+aiosqlite://")
    try:
        yield RaidStore()
    finally:
        await dispose_db()


@asynccontextmanager
async def running_engine(
    gateway: FakeGateway | None = None,
    clock: FakeClock | None = None,
    settings: RaidSettings | None = None,
) -> AsyncIterator[RaidEngine]:
    async with fresh_store() as store:
        engine = RaidEngine(
            RaidRegistry(store),
            gateway or FakeGateway(),
            VENUES,
            settings or RaidSettings(),
            clock=clock or FakeClock(),
        )
        try:
            yield engine
        finally:
            await engine.effects.drain()


async def register(engine: RaidEngine, raid: Raid, gateway: FakeGateway | None = None) -> Raid:
    """Put ``raid`` in the registry and make its channel exist."""

    gw = gateway or engine.gateway
    gw.channels.add(raid.channel_id)
    return await engine.registry.put(raid)
