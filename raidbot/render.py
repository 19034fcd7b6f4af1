"""Text and embed rendering for raid messages."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Mapping, Optional

import discord

from .gateway import GuildDecorations, Member
from .raid import AttendeeStatus, Raid, attendee_count
from .venues import Venue

EMBED_COLOR = 4437377
NO_RAIDS = "No raids exist for this channel.  Create one with `/raid create`!"

_NON_WORD = re.compile(r"[^\w]")

_STATUS_LABELS = {
    AttendeeStatus.INTERESTED: "Interested",
    AttendeeStatus.COMING: "Coming",
    AttendeeStatus.PRESENT: "Present",
    AttendeeStatus.COMPLETE: "Complete",
}


def _slug(value: str) -> str:
    return "-".join(token for token in _NON_WORD.sub(" ", value).split(" ") if token)


def channel_name(raid: Raid, venue: Venue) -> str:
    subject = raid.subject.name if raid.is_resolved else f"tier {raid.subject.tier}"
    return f"{_slug(subject)}-{_slug(venue.display_name.lower())}"


def timestamp(value: datetime, style: str = "t") -> str:
    return f"<t:{int(value.timestamp())}:{style}>"


def channel_mention(channel_id: int) -> str:
    return f"<#{channel_id}>"


def raid_channel_message(raid: Raid) -> str:
    return f"Use {channel_mention(raid.channel_id)} for the following raid:"


def source_channel_message(raid: Raid) -> str:
    return (
        f"Use {channel_mention(raid.source_channel_id)} "
        "to return to this raid's regional channel."
    )


def deletion_warning(deletion_time: datetime) -> str:
    return (
        "**WARNING** - this channel will be deleted automatically at "
        f"{timestamp(deletion_time)}!"
    )


def completion_prompt(channel_id: int) -> str:
    return f"Have you completed raid {channel_mention(channel_id)}?"


def short_summary(raid: Raid, venue: Venue) -> str:
    total = attendee_count(raid)
    plural = "s" if total != 1 else ""
    return (
        f"**{raid.subject.display_name}**\n"
        f"{channel_mention(raid.channel_id)} :: {venue.name} :: "
        f"{total} interested trainer{plural}\n"
    )


def _attendee_lines(
    raid: Raid,
    status: AttendeeStatus,
    members: Mapping[int, Member],
    decorations: GuildDecorations,
) -> str:
    entries = sorted(
        (
            (members[member_id], attendee)
            for member_id, attendee in raid.attendees.items()
            if attendee.status == status and member_id in members
        ),
        key=lambda entry: entry[0].display_name.lower(),
    )
    lines = []
    for member, attendee in entries:
        line = f"{decorations.status_emoji(status)} {member.display_name}".strip()
        if attendee.count > 1:
            line += f" +{attendee.count - 1}"
        team = decorations.team_emoji(member)
        if team:
            line += f" {team}"
        lines.append(line)
    return "\n".join(lines)


def status_embed(
    raid: Raid,
    venue: Venue,
    members: Mapping[int, Member],
    now: datetime,
    decorations: Optional[GuildDecorations] = None,
) -> discord.Embed:
    """Build the embed shown on a raid's announcement and status messages."""

    decorations = decorations or GuildDecorations()
    embed = discord.Embed(
        title=venue.display_name,
        url=venue.directions_url,
        description=(
            f"Level {raid.subject.tier} Raid against {raid.subject.display_name}"
        ),
        colour=EMBED_COLOR,
    )
    if raid.has_end_time:
        embed.set_footer(text="Raid available until")
        embed.timestamp = raid.end_time
    else:
        embed.set_footer(text="Raid end time currently unset")

    total = attendee_count(raid)
    if total > 0:
        embed.add_field(name="__Possible Trainers__", value=str(total), inline=False)
    for status, label in _STATUS_LABELS.items():
        value = _attendee_lines(raid, status, members, decorations)
        if value:
            embed.add_field(name=label, value=value, inline=True)

    if raid.has_hatch_time:
        label = "__Egg Hatched At__" if now > raid.hatch_time else "__Egg Hatch Time__"
        embed.add_field(name=label, value=timestamp(raid.hatch_time), inline=False)
    if raid.has_start_time:
        label = (
            "__Last Starting Time__"
            if now > raid.start_time
            else "__Next Planned Starting Time__"
        )
        embed.add_field(name=label, value=timestamp(raid.start_time), inline=False)
    if venue.additional_information:
        embed.add_field(
            name="**Location Information**",
            value=venue.additional_information,
            inline=False,
        )
    return embed
