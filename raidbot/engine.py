"""Raid operations that combine the registry, the gateway and rendering.

Every operation follows the same order: validate, mutate and persist through
the registry, then schedule whatever chat side effects reflect the change.
Side effects never run inline; they go through :class:`SideEffects` so a
failing Discord call can't undo or block a committed change.

Lookups of external entities heal the raid records that reference them:
a vanished raid channel removes the raid, a vanished message is dropped from
whichever raid tracks it and a member who left is dropped from the attendees.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Optional

import structlog

from . import attendance, render, timing
from .config import RaidSettings
from .effects import SideEffects
from .errors import (
    ChannelNotFound,
    InvalidTime,
    MemberNotFound,
    MessageNotFound,
    PersistenceFailure,
    RaidNotFound,
)
from .gateway import Gateway, GuildDecorations, Member
from .raid import Attendee, AttendeeStatus, MessageRef, Raid, Subject
from .registry import RaidRegistry
from .timing import Clock, utcnow
from .venues import VenueDirectory

logger = structlog.get_logger()

TRUTHY = frozenset({"true", "t", "yes", "y", "on", "enable", "enabled", "1", "+"})
CONFIRMED_REACTION = "\N{THUMBS UP SIGN}"


def is_truthy(reply: str) -> bool:
    return reply.strip().lower() in TRUTHY


class RaidEngine:
    def __init__(
        self,
        registry: RaidRegistry,
        gateway: Gateway,
        venues: VenueDirectory,
        settings: RaidSettings,
        *,
        effects: Optional[SideEffects] = None,
        decorations: Optional[GuildDecorations] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.registry = registry
        self.gateway = gateway
        self.venues = venues
        self.settings = settings
        self.effects = effects or SideEffects()
        self.decorations = decorations or GuildDecorations()
        self.clock = clock

    # -- self-healing lookups ------------------------------------------------

    async def resolve_channel(self, channel_id: int) -> Any:
        try:
            return await self.gateway.get_channel(channel_id)
        except ChannelNotFound:
            await self._forget_channel(channel_id)
            raise

    async def resolve_message(self, ref: MessageRef) -> Any:
        try:
            return await self.gateway.fetch_message(ref)
        except ChannelNotFound as exc:
            await self._forget_channel(exc.channel_id)
            await self._forget_message(ref)
            raise
        except MessageNotFound:
            await self._forget_message(ref)
            raise

    async def resolve_member(self, channel_id: int, member_id: int) -> Member:
        try:
            return await self.gateway.get_member(member_id)
        except MemberNotFound:
            raid = self.registry.find(channel_id)
            if raid is not None and member_id in raid.attendees:
                logger.warning(
                    "raid.member_missing", channel_id=channel_id, member_id=member_id
                )
                await self._update_if_present(
                    channel_id, lambda r: r.attendees.pop(member_id, None)
                )
            raise

    async def _forget_channel(self, channel_id: int) -> None:
        raid = await self.registry.remove(channel_id)
        if raid is None:
            return
        logger.warning("raid.channel_missing", channel_id=channel_id)
        if raid.announcement_ref is not None:
            self.effects.spawn(
                self.gateway.delete_message(raid.announcement_ref),
                name=f"delete-announcement:{channel_id}",
            )

    async def _forget_message(self, ref: MessageRef) -> None:
        def drop(raid: Raid) -> None:
            if raid.announcement_ref == ref:
                raid.announcement_ref = None
            raid.message_refs = [m for m in raid.message_refs if m != ref]

        for raid in self.registry:
            if raid.references(ref):
                logger.warning(
                    "raid.message_missing", channel_id=raid.channel_id, message=str(ref)
                )
                await self._update_if_present(raid.channel_id, drop)

    async def _update_if_present(self, channel_id: int, mutator) -> Optional[Raid]:
        try:
            raid, _ = await self.registry.update(channel_id, mutator)
        except RaidNotFound:
            return None
        return raid

    # -- creation and explicit updates -------------------------------------

    async def create_raid(
        self,
        source_channel_id: int,
        member_id: int,
        subject: Subject,
        venue_id: str,
        end_in: Optional[timedelta] = None,
    ) -> Raid:
        """Clone the source channel for a new raid and register it.

        ``end_in`` is the time left until the raid ends, or until the egg
        hatches when ``subject`` has no name yet.  ``None`` leaves the end
        time undefined.
        """

        venue = self.venues.get(venue_id)
        _check_delay(end_in)
        now = self.clock()
        raid = Raid(
            channel_id=0,
            source_channel_id=source_channel_id,
            created_by=member_id,
            creation_time=now,
            subject=subject,
            venue_id=venue.id,
            last_possible_time=timing.last_possible_time(self.settings, now),
            attendees={member_id: Attendee()},
        )
        await self.resolve_channel(source_channel_id)
        raid.channel_id = await self.gateway.clone_channel(
            source_channel_id, render.channel_name(raid, venue)
        )
        if end_in is not None:
            self._apply_end_time(raid, end_in, now)
        try:
            await self.registry.put(raid)
        except PersistenceFailure:
            self.effects.spawn(
                self.gateway.delete_channel(raid.channel_id),
                name=f"delete-orphan:{raid.channel_id}",
            )
            raise
        logger.info(
            "raid.created",
            channel_id=raid.channel_id,
            source_channel_id=source_channel_id,
            venue_id=venue.id,
        )
        return raid

    def _apply_end_time(self, raid: Raid, delay: timedelta, now: datetime) -> None:
        if raid.is_resolved:
            raid.end_time = now + delay
        else:
            raid.hatch_time, raid.end_time = timing.egg_window(self.settings, now, delay)
        if raid.end_time < raid.creation_time:
            raise InvalidTime()

    async def set_end_time(self, channel_id: int, end_in: timedelta) -> Raid:
        _check_delay(end_in)
        now = self.clock()
        raid, _ = await self.registry.update(
            channel_id, lambda r: self._apply_end_time(r, end_in, now)
        )
        self.schedule_refresh(channel_id)
        return raid

    async def set_start_time(self, channel_id: int, start_in: timedelta) -> Raid:
        """Plan a start; for an egg this sets when it hatches instead."""

        _check_delay(start_in)
        now = self.clock()

        def apply(raid: Raid) -> None:
            if raid.is_resolved:
                raid.start_time = now + start_in
                raid.start_clear_time = None
            else:
                self._apply_end_time(raid, start_in, now)

        raid, _ = await self.registry.update(channel_id, apply)
        self.schedule_refresh(channel_id)
        return raid

    async def set_subject(self, channel_id: int, subject: Subject) -> Raid:
        def apply(raid: Raid) -> None:
            if raid.has_hatch_time and subject.is_resolved:
                raid.hatch_time = None
            raid.subject = subject

        raid, _ = await self.registry.update(channel_id, apply)
        self._schedule_rename(raid)
        self.schedule_refresh(channel_id)
        return raid

    async def set_venue(self, channel_id: int, venue_id: str) -> Raid:
        venue = self.venues.get(venue_id)

        def apply(raid: Raid) -> None:
            raid.venue_id = venue.id

        raid, _ = await self.registry.update(channel_id, apply)
        self._schedule_rename(raid)
        self.schedule_refresh(channel_id)
        return raid

    def _schedule_rename(self, raid: Raid) -> None:
        name = render.channel_name(raid, self.venues.get(raid.venue_id))
        self.effects.spawn(
            self._healing(self.gateway.rename_channel(raid.channel_id, name)),
            name=f"rename:{raid.channel_id}",
        )

    async def set_announcement(self, channel_id: int, ref: MessageRef) -> Raid:
        def apply(raid: Raid) -> None:
            raid.announcement_ref = ref
            raid.message_refs = [m for m in raid.message_refs if m != ref]

        raid, _ = await self.registry.update(channel_id, apply)
        self.effects.spawn(
            self._healing(self.gateway.pin_message(ref), ref), name=f"pin:{ref}"
        )
        return raid

    async def add_message(self, channel_id: int, ref: MessageRef, pin: bool = False) -> Raid:
        def apply(raid: Raid) -> None:
            if ref != raid.announcement_ref and ref not in raid.message_refs:
                raid.message_refs.append(ref)

        raid, _ = await self.registry.update(channel_id, apply)
        if pin:
            self.effects.spawn(
                self._healing(self.gateway.pin_message(ref), ref), name=f"pin:{ref}"
            )
        return raid

    # -- attendance ---------------------------------------------------------

    async def set_member_status(
        self,
        channel_id: int,
        member_id: int,
        status: AttendeeStatus,
        extra: Optional[int] = None,
    ) -> Raid:
        raid, _ = await self.registry.update(
            channel_id, lambda r: attendance.join(r, member_id, status, extra)
        )
        self.schedule_refresh(channel_id)
        return raid

    async def remove_attendee(self, channel_id: int, member_id: int) -> Raid:
        raid, _ = await self.registry.update(
            channel_id, lambda r: attendance.leave(r, member_id)
        )
        self.schedule_refresh(channel_id)
        return raid

    async def mark_complete(self, channel_id: int, member_id: int) -> Raid:
        """Mark the member complete and ask the other present members too."""

        raid = await self.set_member_status(channel_id, member_id, AttendeeStatus.COMPLETE)
        self.effects.spawn(
            self.poll_present_attendees(channel_id, exclude=member_id),
            name=f"poll:{channel_id}",
        )
        return raid

    # -- completion poll ----------------------------------------------------

    async def poll_present_attendees(
        self, channel_id: int, exclude: Optional[int] = None
    ) -> list[asyncio.Task[Any]]:
        """Ask every present attendee whether they finished the raid.

        One task per attendee, each with its own timeout; the returned tasks
        are only for bookkeeping and nobody is required to await them.
        """

        raid = self.registry.find(channel_id)
        if raid is None:
            return []
        await self.resolve_channel(channel_id)
        return [
            self.effects.spawn(
                self.confirm_completion(channel_id, member_id),
                name=f"poll:{channel_id}:{member_id}",
            )
            for member_id in raid.attendees_with_status(AttendeeStatus.PRESENT)
            if member_id != exclude
        ]

    async def confirm_completion(self, channel_id: int, member_id: int) -> bool:
        await self.resolve_member(channel_id, member_id)
        reply = await self.gateway.ask(
            member_id,
            render.completion_prompt(channel_id),
            timeout=self.settings.completion_poll_timeout.total_seconds(),
        )
        if reply is None or not is_truthy(reply.content):
            logger.info(
                "raid.completion_declined", channel_id=channel_id, member_id=member_id
            )
            return False
        raid = await self._update_if_present(
            channel_id, lambda r: attendance.complete(r, member_id)
        )
        if raid is None or member_id not in raid.attendees:
            return False
        logger.info("raid.completion_confirmed", channel_id=channel_id, member_id=member_id)
        self.effects.spawn(
            self.gateway.add_reaction(reply.ref, CONFIRMED_REACTION),
            name=f"react:{reply.ref}",
        )
        self.schedule_refresh(channel_id)
        return True

    # -- status messages ----------------------------------------------------

    def schedule_refresh(self, channel_id: int) -> None:
        self.effects.spawn(
            self.refresh_status_messages(channel_id), name=f"refresh:{channel_id}"
        )

    async def _members(self, raid: Raid) -> dict[int, Member]:
        member_ids = list(raid.attendees)
        results = await asyncio.gather(
            *(self.resolve_member(raid.channel_id, m) for m in member_ids),
            return_exceptions=True,
        )
        members: dict[int, Member] = {}
        for member_id, result in zip(member_ids, results):
            if isinstance(result, MemberNotFound):
                continue
            if isinstance(result, BaseException):
                raise result
            members[member_id] = result
        return members

    async def _embed(self, raid: Raid) -> tuple[Raid, Any]:
        members = await self._members(raid)
        current = self.registry.get(raid.channel_id)
        venue = self.venues.get(current.venue_id)
        return current, render.status_embed(
            current, venue, members, self.clock(), self.decorations
        )

    async def announce(self, channel_id: int) -> Raid:
        """Post the announcement in the source channel and a pinned status
        message in the raid channel, and track both."""

        raid, embed = await self._embed(self.registry.get(channel_id))
        announcement = await self._healing(
            self.gateway.send_message(
                raid.source_channel_id, render.raid_channel_message(raid), embed=embed
            )
        )
        await self.set_announcement(channel_id, announcement)
        status = await self._healing(
            self.gateway.send_message(
                channel_id, render.source_channel_message(raid), embed=embed
            )
        )
        return await self.add_message(channel_id, status, pin=True)

    async def refresh_status_messages(self, channel_id: int) -> None:
        """Re-render the raid and edit every message that shows it."""

        raid = self.registry.find(channel_id)
        if raid is None:
            return
        try:
            raid, embed = await self._embed(raid)
        except RaidNotFound:
            return
        if raid.announcement_ref is not None:
            self.effects.spawn(
                self._edit(raid.announcement_ref, render.raid_channel_message(raid), embed),
                name=f"edit:{raid.announcement_ref}",
            )
        for ref in raid.message_refs:
            self.effects.spawn(
                self._edit(ref, render.source_channel_message(raid), embed),
                name=f"edit:{ref}",
            )

    async def _edit(self, ref: MessageRef, content: str, embed: Any) -> None:
        await self._healing(
            self.gateway.edit_message(ref, content=content, embed=embed), ref
        )

    async def _healing(self, call, ref: Optional[MessageRef] = None) -> Any:
        """Await a gateway call, healing raid records on stale references.

        ``ref`` is the message the call acts on, if any; it is dropped from
        every raid when its channel turns out to be gone.
        """

        try:
            return await call
        except ChannelNotFound as exc:
            await self._forget_channel(exc.channel_id)
            if ref is not None:
                await self._forget_message(ref)
            raise
        except MessageNotFound as exc:
            if isinstance(exc.ref, MessageRef):
                await self._forget_message(exc.ref)
            raise

    async def send_to_raid(self, channel_id: int, content: str) -> MessageRef:
        return await self._healing(self.gateway.send_message(channel_id, content))

    async def teardown(self, raid: Raid) -> None:
        """Delete the announcement and the raid channel of an archived raid."""

        if raid.announcement_ref is not None:
            self.effects.spawn(
                self.gateway.delete_message(raid.announcement_ref),
                name=f"delete-announcement:{raid.channel_id}",
            )
        await self.gateway.delete_channel(raid.channel_id)
        logger.info("raid.channel_deleted", channel_id=raid.channel_id)

    # -- queries ------------------------------------------------------------

    async def summary_for_source(self, source_channel_id: int) -> str:
        lines = []
        for raid in self.registry.all_for_source(source_channel_id):
            try:
                await self.resolve_channel(raid.channel_id)
            except ChannelNotFound:
                continue
            lines.append(render.short_summary(raid, self.venues.get(raid.venue_id)))
        return "\n".join(lines) if lines else render.NO_RAIDS


def _check_delay(delay: Optional[timedelta]) -> None:
    if delay is not None and delay < timedelta(0):
        raise InvalidTime()
