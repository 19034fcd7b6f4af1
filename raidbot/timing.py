"""Time thresholds used by raid creation and the lifecycle sweep."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

from .config import RaidSettings

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def last_possible_time(settings: RaidSettings, created: datetime) -> datetime:
    return created + settings.default_raid_duration


def start_clear_deadline(settings: RaidSettings, now: datetime) -> datetime:
    return now + settings.start_clear


def deletion_deadline(settings: RaidSettings, now: datetime) -> datetime:
    return now + settings.deletion_warning


def egg_window(
    settings: RaidSettings, now: datetime, delay: timedelta
) -> tuple[datetime, datetime]:
    """Return ``(hatch_time, end_time)`` for an egg hatching after ``delay``."""

    hatch = now + delay
    return hatch, hatch + settings.hatched_egg_duration
