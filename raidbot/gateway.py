"""Boundary between the raid engine and the chat platform.

The engine only talks to a :class:`Gateway`.  :class:`DiscordGateway` is the
production implementation on top of ``discord.py``; tests substitute a plain
in-memory class with the same methods.
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional, Protocol, Sequence

import discord
from discord.ext import commands

from .discordbot.utils import api_call_with_retries
from .errors import (
    ChannelNotFound,
    ExternalReferenceStale,
    GatewayFailure,
    MemberNotFound,
    MessageNotFound,
)
from .raid import AttendeeStatus, MessageRef


@dataclass(frozen=True)
class DirectReply:
    """A member's direct message answering a question from the bot."""

    content: str
    ref: MessageRef


class Member(Protocol):
    id: int
    display_name: str
    roles: Sequence[Any]


class Gateway(Protocol):
    async def get_channel(self, channel_id: int) -> Any: ...

    async def fetch_message(self, ref: MessageRef) -> Any: ...

    async def send_message(
        self,
        channel_id: int,
        content: Optional[str] = None,
        embed: Optional[discord.Embed] = None,
    ) -> MessageRef: ...

    async def edit_message(
        self,
        ref: MessageRef,
        content: Optional[str] = None,
        embed: Optional[discord.Embed] = None,
    ) -> None: ...

    async def delete_message(self, ref: MessageRef) -> None: ...

    async def pin_message(self, ref: MessageRef) -> None: ...

    async def add_reaction(self, ref: MessageRef, emoji: str) -> None: ...
    async def rename_channel(self, channel_id: int, name: str) -> None: ...

    async def clone_channel(self, channel_id: int, name: str) -> int: ...

    async def delete_channel(self, channel_id: int) -> None: ...

    async def get_member(self, member_id: int) -> Member: ...

    async def ask(
        self, member_id: int, prompt: str, timeout: float
    ) -> Optional[DirectReply]: ...


TEAM_ROLES = ("mystic", "valor", "instinct")

STATUS_EMOJI_NAMES = {
    AttendeeStatus.INTERESTED: "pokeball",
    AttendeeStatus.COMING: "greatball",
    AttendeeStatus.PRESENT: "ultraball",
    AttendeeStatus.COMPLETE: "premierball",
}


@dataclass
class GuildDecorations:
    """Role and emoji lookups used when rendering attendee lists.

    Built once from the guild when the bot is ready and handed to whoever
    renders; empty decorations simply render without emoji.
    """

    team_roles: dict[int, str] = field(default_factory=dict)
    status_emojis: dict[AttendeeStatus, str] = field(default_factory=dict)

    @classmethod
    def from_guild(cls, guild: discord.Guild) -> "GuildDecorations":
        emojis = {emoji.name.lower(): str(emoji) for emoji in guild.emojis}
        team_roles = {
            role.id: emojis.get(role.name.lower(), "")
            for role in guild.roles
            if role.name.lower() in TEAM_ROLES
        }
        status_emojis = {
            status: emojis.get(name, "") for status, name in STATUS_EMOJI_NAMES.items()
        }
        return cls(team_roles=team_roles, status_emojis=status_emojis)

    def team_emoji(self, member: Member) -> str:
        for role in member.roles:
            emoji = self.team_roles.get(getattr(role, "id", role))
            if emoji:
                return emoji
        return ""

    def status_emoji(self, status: AttendeeStatus) -> str:
        return self.status_emojis.get(status, "")


@contextmanager
def _discord_errors(not_found: Callable[[], ExternalReferenceStale]) -> Iterator[None]:
    try:
        yield
    except discord.NotFound as exc:
        raise not_found() from exc
    except discord.HTTPException as exc:
        raise GatewayFailure(str(exc)) from exc


class DiscordGateway:
    def __init__(self, bot: commands.Bot, guild_id: int) -> None:
        self.bot = bot
        self.guild_id = guild_id

    @property
    def guild(self) -> discord.Guild:
        guild = self.bot.get_guild(self.guild_id)
        if guild is None:
            raise GatewayFailure(f"Guild {self.guild_id} is not available")
        return guild

    async def get_channel(self, channel_id: int) -> Any:
        channel = self.bot.get_channel(channel_id)
        if channel is not None:
            return channel
        with _discord_errors(lambda: ChannelNotFound(channel_id)):
            return await api_call_with_retries(self.bot.fetch_channel, channel_id)

    async def fetch_message(self, ref: MessageRef) -> discord.Message:
        channel = await self.get_channel(ref.channel_id)
        with _discord_errors(lambda: MessageNotFound(ref)):
            return await api_call_with_retries(channel.fetch_message, ref.message_id)

    async def send_message(
        self,
        channel_id: int,
        content: Optional[str] = None,
        embed: Optional[discord.Embed] = None,
    ) -> MessageRef:
        channel = await self.get_channel(channel_id)
        with _discord_errors(lambda: ChannelNotFound(channel_id)):
            message = await api_call_with_retries(channel.send, content, embed=embed)
        return MessageRef(channel_id, message.id)

    async def edit_message(
        self,
        ref: MessageRef,
        content: Optional[str] = None,
        embed: Optional[discord.Embed] = None,
    ) -> None:
        message = await self.fetch_message(ref)
        with _discord_errors(lambda: MessageNotFound(ref)):
            await api_call_with_retries(message.edit, content=content, embed=embed)

    async def delete_message(self, ref: MessageRef) -> None:
        message = await self.fetch_message(ref)
        with _discord_errors(lambda: MessageNotFound(ref)):
            await api_call_with_retries(message.delete)

    async def pin_message(self, ref: MessageRef) -> None:
        message = await self.fetch_message(ref)
        with _discord_errors(lambda: MessageNotFound(ref)):
            await api_call_with_retries(message.pin)

    async def add_reaction(self, ref: MessageRef, emoji: str) -> None:
        message = await self.fetch_message(ref)
        with _discord_errors(lambda: MessageNotFound(ref)):
            await api_call_with_retries(message.add_reaction, emoji)

    async def rename_channel(self, channel_id: int, name: str) -> None:
        channel = await self.get_channel(channel_id)
        with _discord_errors(lambda: ChannelNotFound(channel_id)):
            await api_call_with_retries(channel.edit, name=name)

    async def clone_channel(self, channel_id: int, name: str) -> int:
        channel = await self.get_channel(channel_id)
        with _discord_errors(lambda: ChannelNotFound(channel_id)):
            clone = await api_call_with_retries(channel.clone, name=name)
        return clone.id

    async def delete_channel(self, channel_id: int) -> None:
        channel = await self.get_channel(channel_id)
        with _discord_errors(lambda: ChannelNotFound(channel_id)):
            await api_call_with_retries(channel.delete)

    async def get_member(self, member_id: int) -> discord.Member:
        guild = self.guild
        member = guild.get_member(member_id)
        if member is not None:
            return member
        with _discord_errors(lambda: MemberNotFound(member_id)):
            return await api_call_with_retries(guild.fetch_member, member_id)

    async def ask(
        self, member_id: int, prompt: str, timeout: float
    ) -> Optional[DirectReply]:
        """DM ``prompt`` to a member and wait for their next DM reply."""

        member = await self.get_member(member_id)
        with _discord_errors(lambda: MemberNotFound(member_id)):
            question = await member.send(prompt)

        def check(message: discord.Message) -> bool:
            return (
                message.author.id == member_id
                and message.channel.id == question.channel.id
            )

        try:
            reply = await self.bot.wait_for("message", check=check, timeout=timeout)
        except asyncio.TimeoutError:
            return None
        return DirectReply(reply.content, MessageRef(reply.channel.id, reply.id))
