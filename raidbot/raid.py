"""Raid entity model.

A :class:`Raid` is plain data.  Optional timers are ``None`` while unset and
their presence is what encodes the raid's phase; the helpers below give each
of those checks a name so callers never poke at fields directly.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from .errors import MalformedRecord


class AttendeeStatus(str, Enum):
    INTERESTED = "interested"
    COMING = "coming"
    PRESENT = "present"
    COMPLETE = "complete"


@dataclass(frozen=True)
class MessageRef:
    """Composite reference to a message posted in some channel."""

    channel_id: int
    message_id: int

    def __str__(self) -> str:
        return f"{self.channel_id}:{self.message_id}"

    @classmethod
    def parse(cls, value: str) -> "MessageRef":
        channel_id, message_id = value.split(":")
        return cls(int(channel_id), int(message_id))


@dataclass
class Subject:
    """What the raid is against: a named boss or a tier-only egg."""

    name: Optional[str] = None
    tier: Optional[int] = None

    @property
    def is_resolved(self) -> bool:
        return bool(self.name)

    @property
    def display_name(self) -> str:
        return self.name.capitalize() if self.name else "????"


@dataclass
class Attendee:
    count: int = 1
    status: AttendeeStatus = AttendeeStatus.INTERESTED


@dataclass
class Raid:
    channel_id: int
    source_channel_id: int
    created_by: int
    creation_time: datetime
    subject: Subject
    venue_id: str
    last_possible_time: datetime
    attendees: dict[int, Attendee] = field(default_factory=dict)
    hatch_time: Optional[datetime] = None
    start_time: Optional[datetime] = None
    start_clear_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    deletion_time: Optional[datetime] = None
    egg_hatched: bool = False
    announcement_ref: Optional[MessageRef] = None
    message_refs: list[MessageRef] = field(default_factory=list)

    @property
    def is_resolved(self) -> bool:
        return self.subject.is_resolved

    @property
    def has_hatch_time(self) -> bool:
        return self.hatch_time is not None

    @property
    def has_start_time(self) -> bool:
        return self.start_time is not None

    @property
    def is_clearing_start(self) -> bool:
        return self.start_clear_time is not None

    @property
    def has_end_time(self) -> bool:
        return self.end_time is not None

    @property
    def is_deletion_scheduled(self) -> bool:
        return self.deletion_time is not None

    def is_hatch_due(self, now: datetime) -> bool:
        return (
            self.has_hatch_time
            and now > self.hatch_time
            and not self.egg_hatched
        )

    def is_expired(self, now: datetime) -> bool:
        if self.has_end_time and now > self.end_time:
            return True
        return now > self.last_possible_time

    def is_due_for_deletion(self, now: datetime) -> bool:
        return self.deletion_time is not None and now > self.deletion_time

    def attendees_with_status(self, status: AttendeeStatus) -> list[int]:
        return [
            member_id
            for member_id, attendee in self.attendees.items()
            if attendee.status == status
        ]

    def references(self, ref: MessageRef) -> bool:
        return ref == self.announcement_ref or ref in self.message_refs

    def copy(self) -> "Raid":
        return copy.deepcopy(self)

    def archived(self) -> "Raid":
        """Return a copy without any message references."""

        raid = self.copy()
        raid.announcement_ref = None
        raid.message_refs = []
        return raid

    def to_record(self, *, include_refs: bool = True) -> dict[str, Any]:
        record: dict[str, Any] = {
            "channel_id": str(self.channel_id),
            "source_channel_id": str(self.source_channel_id),
            "created_by": str(self.created_by),
            "creation_time": _dump_time(self.creation_time),
            "subject": {"name": self.subject.name, "tier": self.subject.tier},
            "venue_id": self.venue_id,
            "last_possible_time": _dump_time(self.last_possible_time),
            "attendees": {
                str(member_id): {"count": a.count, "status": a.status.value}
                for member_id, a in self.attendees.items()
            },
            "hatch_time": _dump_time(self.hatch_time),
            "start_time": _dump_time(self.start_time),
            "start_clear_time": _dump_time(self.start_clear_time),
            "end_time": _dump_time(self.end_time),
            "deletion_time": _dump_time(self.deletion_time),
            "egg_hatched": self.egg_hatched,
        }
        if include_refs:
            record["announcement_ref"] = (
                str(self.announcement_ref) if self.announcement_ref else None
            )
            record["message_refs"] = [str(ref) for ref in self.message_refs]
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Raid":
        """Parse a stored record, ignoring keys this version does not know."""

        try:
            subject = record["subject"]
            attendees = {
                int(member_id): Attendee(
                    count=int(entry["count"]),
                    status=AttendeeStatus(entry["status"]),
                )
                for member_id, entry in record.get("attendees", {}).items()
            }
            if any(a.count < 1 for a in attendees.values()):
                raise ValueError("attendee count must be positive")
            announcement = record.get("announcement_ref")
            return cls(
                channel_id=int(record["channel_id"]),
                source_channel_id=int(record["source_channel_id"]),
                created_by=int(record["created_by"]),
                creation_time=_require_time(record["creation_time"]),
                subject=Subject(name=subject.get("name"), tier=subject.get("tier")),
                venue_id=str(record["venue_id"]),
                last_possible_time=_require_time(record["last_possible_time"]),
                attendees=attendees,
                hatch_time=_load_time(record.get("hatch_time")),
                start_time=_load_time(record.get("start_time")),
                start_clear_time=_load_time(record.get("start_clear_time")),
                end_time=_load_time(record.get("end_time")),
                deletion_time=_load_time(record.get("deletion_time")),
                egg_hatched=bool(record.get("egg_hatched", False)),
                announcement_ref=MessageRef.parse(announcement) if announcement else None,
                message_refs=[
                    MessageRef.parse(ref) for ref in record.get("message_refs") or []
                ],
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise MalformedRecord(str(exc)) from exc


def attendee_count(raid: Raid) -> int:
    """Number of expected participants; completed attendees don't count."""

    return sum(
        attendee.count
        for attendee in raid.attendees.values()
        if attendee.status != AttendeeStatus.COMPLETE
    )


def _dump_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _load_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _require_time(value: Optional[str]) -> datetime:
    dt = _load_time(value)
    if dt is None:
        raise ValueError("missing timestamp")
    return dt
