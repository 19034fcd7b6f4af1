import pytest

from helpers import CREATOR, make_raid

from raidbot import attendance
from raidbot.errors import AlreadyJoined, InvalidCount, NotJoined
from raidbot.raid import Attendee, AttendeeStatus


def test_join_adds_new_attendee_with_party() -> None:
    raid = make_raid()
    attendee = attendance.join(raid, 2, AttendeeStatus.COMING, extra=2)
    assert attendee == Attendee(3, AttendeeStatus.COMING)
    assert raid.attendees[2] is attendee


def test_join_without_extra_defaults_to_one() -> None:
    raid = make_raid()
    attendance.join(raid, 2)
    assert raid.attendees[2] == Attendee(1, AttendeeStatus.INTERESTED)


def test_rejoining_as_interested_is_rejected() -> None:
    raid = make_raid()
    with pytest.raises(AlreadyJoined):
        attendance.join(raid, CREATOR)
    with pytest.raises(AlreadyJoined):
        attendance.join(raid, CREATOR, extra=0)


def test_interested_with_new_party_size_updates_count() -> None:
    raid = make_raid()
    attendance.join(raid, CREATOR, extra=3)
    assert raid.attendees[CREATOR].count == 4


def test_status_change_keeps_count_when_extra_omitted() -> None:
    raid = make_raid()
    attendance.join(raid, CREATOR, extra=2)
    attendance.join(raid, CREATOR, AttendeeStatus.PRESENT)
    assert raid.attendees[CREATOR] == Attendee(3, AttendeeStatus.PRESENT)


def test_negative_extra_is_rejected() -> None:
    raid = make_raid()
    with pytest.raises(InvalidCount):
        attendance.join(raid, 2, extra=-1)
    assert 2 not in raid.attendees


def test_leave() -> None:
    raid = make_raid()
    attendance.leave(raid, CREATOR)
    assert raid.attendees == {}
    with pytest.raises(NotJoined):
        attendance.leave(raid, CREATOR)


def test_complete_ignores_members_who_left() -> None:
    raid = make_raid()
    assert attendance.complete(raid, CREATOR) is True
    assert raid.attendees[CREATOR].status is AttendeeStatus.COMPLETE
    assert attendance.complete(raid, 99) is False
    assert 99 not in raid.attendees
