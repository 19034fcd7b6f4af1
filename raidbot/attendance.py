"""Attendee bookkeeping.

These functions only mutate the :class:`~raidbot.raid.Raid` they are given and
raise a validation error instead when the request makes no sense.  Persisting
and refreshing status messages is the caller's job, normally through
:meth:`raidbot.registry.RaidRegistry.update`.
"""

from __future__ import annotations

from typing import Optional

from .errors import AlreadyJoined, InvalidCount, NotJoined
from .raid import Attendee, AttendeeStatus, Raid


def join(
    raid: Raid,
    member_id: int,
    status: AttendeeStatus = AttendeeStatus.INTERESTED,
    extra: Optional[int] = None,
) -> Attendee:
    """Add ``member_id`` to the raid or change their status and party size.

    ``extra`` is the number of additional people the member brings; ``None``
    means the member didn't say, which keeps any existing count.
    """

    if extra is not None and extra < 0:
        raise InvalidCount()
    count = 1 + extra if extra is not None else 1

    attendee = raid.attendees.get(member_id)
    if attendee is None:
        attendee = Attendee(count=count, status=status)
        raid.attendees[member_id] = attendee
        return attendee

    if status == AttendeeStatus.INTERESTED and (extra is None or attendee.count == count):
        raise AlreadyJoined()

    if extra is not None:
        attendee.count = count
    attendee.status = status
    return attendee


def leave(raid: Raid, member_id: int) -> Attendee:
    try:
        return raid.attendees.pop(member_id)
    except KeyError:
        raise NotJoined() from None


def complete(raid: Raid, member_id: int) -> bool:
    """Mark an existing attendee complete.  Returns ``False`` if they left."""

    attendee = raid.attendees.get(member_id)
    if attendee is None:
        return False
    attendee.status = AttendeeStatus.COMPLETE
    return True
