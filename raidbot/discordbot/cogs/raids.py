from __future__ import annotations

from datetime import timedelta
from typing import Awaitable, Optional

import discord
from discord import app_commands
from discord.ext import commands

from ...errors import PersistenceFailure, RaidError, RaidValidationError
from ...raid import AttendeeStatus, Subject


raid_group = app_commands.Group(name="raid", description="Coordinate raids")


async def _respond(
    interaction: discord.Interaction, call: Awaitable[object], ok: str
) -> None:
    try:
        await call
    except RaidValidationError as exc:
        await interaction.response.send_message(str(exc), ephemeral=True)
        return
    except PersistenceFailure:
        await interaction.response.send_message(
            "Could not save the raid, please try again.", ephemeral=True
        )
        return
    await interaction.response.send_message(ok, ephemeral=True)


def _minutes(value: Optional[int]) -> Optional[timedelta]:
    return timedelta(minutes=value) if value is not None else None


@raid_group.command(name="create", description="Create a raid channel")
@app_commands.describe(
    venue="Venue id",
    boss="Raid boss name, leave empty for an egg",
    tier="Raid tier",
    minutes="Minutes left until the raid ends, or until the egg hatches",
)
async def create(
    interaction: discord.Interaction,
    venue: str,
    tier: int,
    boss: Optional[str] = None,
    minutes: Optional[int] = None,
) -> None:
    engine = interaction.client.engine
    await interaction.response.defer(ephemeral=True)
    try:
        raid = await engine.create_raid(
            interaction.channel_id,
            interaction.user.id,
            Subject(name=boss, tier=tier),
            venue,
            _minutes(minutes),
        )
        await engine.announce(raid.channel_id)
    except RaidValidationError as exc:
        await interaction.followup.send(str(exc), ephemeral=True)
        return
    except RaidError as exc:
        await interaction.followup.send(f"Failed to create raid: {exc}", ephemeral=True)
        return
    await interaction.followup.send(f"Raid created in <#{raid.channel_id}>", ephemeral=True)


def _status_command(name: str, description: str, status: AttendeeStatus):
    @raid_group.command(name=name, description=description)
    @app_commands.describe(extra="Additional people you are bringing")
    async def command(
        interaction: discord.Interaction, extra: Optional[app_commands.Range[int, 0]] = None
    ) -> None:
        engine = interaction.client.engine
        await _respond(
            interaction,
            engine.set_member_status(
                interaction.channel_id, interaction.user.id, status, extra
            ),
            f"You are now {status.value}.",
        )

    return command


join = _status_command("join", "Express interest in this raid", AttendeeStatus.INTERESTED)
coming = _status_command("coming", "Say you are on your way", AttendeeStatus.COMING)
here = _status_command("here", "Say you are at the venue", AttendeeStatus.PRESENT)


@raid_group.command(name="done", description="Mark the raid complete for you")
async def done(interaction: discord.Interaction) -> None:
    engine = interaction.client.engine
    await _respond(
        interaction,
        engine.mark_complete(interaction.channel_id, interaction.user.id),
        "Marked complete.",
    )


@raid_group.command(name="leave", description="Leave this raid")
async def leave(interaction: discord.Interaction) -> None:
    engine = interaction.client.engine
    await _respond(
        interaction,
        engine.remove_attendee(interaction.channel_id, interaction.user.id),
        "You left the raid.",
    )


@raid_group.command(name="start", description="Plan when the group starts")
@app_commands.describe(minutes="Minutes from now")
async def start(
    interaction: discord.Interaction, minutes: app_commands.Range[int, 0]
) -> None:
    engine = interaction.client.engine
    await _respond(
        interaction,
        engine.set_start_time(interaction.channel_id, timedelta(minutes=minutes)),
        "Start time set.",
    )


@raid_group.command(name="end", description="Set how long the raid remains")
@app_commands.describe(minutes="Minutes from now")
async def end(
    interaction: discord.Interaction, minutes: app_commands.Range[int, 0]
) -> None:
    engine = interaction.client.engine
    await _respond(
        interaction,
        engine.set_end_time(interaction.channel_id, timedelta(minutes=minutes)),
        "End time set.",
    )


@raid_group.command(name="boss", description="Set the raid boss once the egg hatched")
async def boss(interaction: discord.Interaction, name: str) -> None:
    engine = interaction.client.engine
    raid = engine.registry.find(interaction.channel_id)
    tier = raid.subject.tier if raid is not None else None
    await _respond(
        interaction,
        engine.set_subject(interaction.channel_id, Subject(name=name, tier=tier)),
        f"Raid boss set to {name}.",
    )


@raid_group.command(name="venue", description="Move the raid to another venue")
async def venue(interaction: discord.Interaction, venue_id: str) -> None:
    engine = interaction.client.engine
    await _respond(
        interaction,
        engine.set_venue(interaction.channel_id, venue_id),
        "Venue updated.",
    )


@raid_group.command(name="list", description="List raids started from this channel")
async def list_raids(interaction: discord.Interaction) -> None:
    engine = interaction.client.engine
    text = await engine.summary_for_source(interaction.channel_id)
    await interaction.response.send_message(text, ephemeral=True)


class Raids(commands.Cog):
    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(Raids(bot))
    bot.tree.add_command(raid_group)
