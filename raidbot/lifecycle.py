"""Periodic sweep advancing every raid through its timed phases.

Each tick checks, in this order, for every registered raid:

1. hatch: the egg's hatch time passed (fires once per raid)
2. start window: a passed start time arms ``start_clear_time``; once that
   passes too, both are cleared and present attendees are asked whether they
   finished
3. expiry: the end time or the last possible time passed, so deletion gets
   scheduled and the channel warned
4. deletion: the deletion time passed, so the raid is archived and its
   channel torn down

The checks are independent and several may fire for one raid in one tick.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Optional

import structlog

from . import render, timing
from .engine import RaidEngine
from .raid import Raid

logger = structlog.get_logger()

HATCH = "hatch"
START_ARMED = "start_armed"
START_CLEARED = "start_cleared"
EXPIRY_WARNING = "expiry_warning"
ARCHIVED = "archived"


async def advance_raid(engine: RaidEngine, channel_id: int, now: datetime) -> list[str]:
    """Run every lifecycle check for one raid and return the transitions fired."""

    fired: list[str] = []
    settings = engine.settings
    registry = engine.registry

    raid = registry.find(channel_id)
    if raid is None:
        return fired

    if raid.is_hatch_due(now):

        def hatch(r: Raid) -> bool:
            if not r.is_hatch_due(now):
                return False
            r.egg_hatched = True
            return True

        raid, changed = await registry.update(channel_id, hatch)
        if changed:
            fired.append(HATCH)
            engine.schedule_refresh(channel_id)

    if raid.has_start_time:
        if raid.is_clearing_start:
            if now > raid.start_clear_time:

                def clear_start(r: Raid) -> None:
                    r.start_time = None
                    r.start_clear_time = None

                raid, _ = await registry.update(channel_id, clear_start)
                fired.append(START_CLEARED)
                engine.schedule_refresh(channel_id)
                engine.effects.spawn(
                    engine.poll_present_attendees(channel_id),
                    name=f"poll:{channel_id}",
                )
        elif now > raid.start_time:
            deadline = timing.start_clear_deadline(settings, now)

            def arm_start_clear(r: Raid) -> None:
                r.start_clear_time = deadline

            raid, _ = await registry.update(channel_id, arm_start_clear)
            fired.append(START_ARMED)
            engine.schedule_refresh(channel_id)

    if raid.is_expired(now) and not raid.is_deletion_scheduled:
        deletion_time = timing.deletion_deadline(settings, now)

        def schedule_deletion(r: Raid) -> bool:
            if r.is_deletion_scheduled:
                return False
            r.deletion_time = deletion_time
            return True

        raid, changed = await registry.update(channel_id, schedule_deletion)
        if changed:
            fired.append(EXPIRY_WARNING)
            logger.info(
                "raid.deletion_scheduled",
                channel_id=channel_id,
                deletion_time=deletion_time.isoformat(),
            )
            engine.effects.spawn(
                engine.send_to_raid(channel_id, render.deletion_warning(deletion_time)),
                name=f"warn:{channel_id}",
            )

    if raid.is_due_for_deletion(now):
        archived = await registry.archive(channel_id)
        if archived is not None:
            fired.append(ARCHIVED)
            logger.info(
                "raid.archived", channel_id=channel_id, venue_id=archived.venue_id
            )
            engine.effects.spawn(engine.teardown(archived), name=f"teardown:{channel_id}")

    return fired


async def sweep_once(engine: RaidEngine, now: Optional[datetime] = None) -> dict[int, list[str]]:
    """Advance every registered raid once.

    A failure on one raid is logged and the sweep carries on with the next.
    """

    now = now or engine.clock()
    results: dict[int, list[str]] = {}
    for channel_id in engine.registry.channel_ids():
        try:
            fired = await advance_raid(engine, channel_id, now)
        except Exception:
            logger.exception("lifecycle.raid_failed", channel_id=channel_id)
            continue
        if fired:
            results[channel_id] = fired
    return results


async def raid_lifecycle_sweeper(engine: RaidEngine) -> None:
    interval = engine.settings.sweep_interval.total_seconds()
    while True:
        try:
            await sweep_once(engine)
        except Exception:  # pragma: no cover
            logger.exception("lifecycle.sweep_failed")
        await asyncio.sleep(interval)
