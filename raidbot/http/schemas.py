from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..raid import AttendeeStatus, Raid, attendee_count


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SubjectDto(CamelModel):
    name: Optional[str] = None
    tier: Optional[int] = None


class AttendeeDto(CamelModel):
    member_id: str = Field(alias="memberId")
    count: int
    status: AttendeeStatus


class RaidDto(CamelModel):
    channel_id: str = Field(alias="channelId")
    source_channel_id: str = Field(alias="sourceChannelId")
    created_by: str = Field(alias="createdBy")
    creation_time: datetime = Field(alias="creationTime")
    subject: SubjectDto
    venue_id: str = Field(alias="venueId")
    attendees: List[AttendeeDto]
    attendee_count: int = Field(alias="attendeeCount")
    hatch_time: Optional[datetime] = Field(default=None, alias="hatchTime")
    start_time: Optional[datetime] = Field(default=None, alias="startTime")
    end_time: Optional[datetime] = Field(default=None, alias="endTime")
    last_possible_time: datetime = Field(alias="lastPossibleTime")
    deletion_time: Optional[datetime] = Field(default=None, alias="deletionTime")

    @classmethod
    def from_raid(cls, raid: Raid) -> "RaidDto":
        return cls(
            channel_id=str(raid.channel_id),
            source_channel_id=str(raid.source_channel_id),
            created_by=str(raid.created_by),
            creation_time=raid.creation_time,
            subject=SubjectDto(name=raid.subject.name, tier=raid.subject.tier),
            venue_id=raid.venue_id,
            attendees=[
                AttendeeDto(member_id=str(member_id), count=a.count, status=a.status)
                for member_id, a in raid.attendees.items()
            ],
            attendee_count=attendee_count(raid),
            hatch_time=raid.hatch_time,
            start_time=raid.start_time,
            end_time=raid.end_time,
            last_possible_time=raid.last_possible_time,
            deletion_time=raid.deletion_time,
        )
