from datetime import timedelta

import pytest

from helpers import T0, make_raid

from raidbot.errors import MalformedRecord
from raidbot.raid import Attendee, AttendeeStatus, MessageRef, Raid, attendee_count


def test_attendee_count_excludes_completed() -> None:
    raid = make_raid(
        attendees={
            1: Attendee(3, AttendeeStatus.INTERESTED),
            2: Attendee(1, AttendeeStatus.PRESENT),
            3: Attendee(2, AttendeeStatus.COMPLETE),
        }
    )
    assert attendee_count(raid) == 4


def test_attendee_count_empty_raid() -> None:
    assert attendee_count(make_raid(attendees={})) == 0


def test_record_keeps_all_fields() -> None:
    raid = make_raid(
        hatch_time=T0 + timedelta(minutes=5),
        end_time=T0 + timedelta(minutes=50),
        egg_hatched=True,
        announcement_ref=MessageRef(500, 7),
        message_refs=[MessageRef(100, 8)],
    )
    record = raid.to_record()
    assert record["channel_id"] == "100"
    assert record["attendees"] == {"1": {"count": 1, "status": "interested"}}

    restored = Raid.from_record(record)
    assert restored == raid
    assert restored.end_time.tzinfo is not None


def test_archived_record_drops_message_refs() -> None:
    raid = make_raid(announcement_ref=MessageRef(500, 7), message_refs=[MessageRef(100, 8)])
    record = raid.archived().to_record(include_refs=False)
    assert "announcement_ref" not in record
    assert "message_refs" not in record
    restored = Raid.from_record(record)
    assert restored.announcement_ref is None
    assert restored.message_refs == []
    # the live raid is untouched
    assert raid.message_refs == [MessageRef(100, 8)]


def test_unknown_keys_are_ignored() -> None:
    record = make_raid().to_record()
    record["some_future_field"] = {"x": 1}
    assert Raid.from_record(record).channel_id == 100


@pytest.mark.parametrize(
    "mutate",
    [
        lambda r: r.pop("creation_time"),
        lambda r: r.update(creation_time=None),
        lambda r: r.update(channel_id="not-a-number"),
        lambda r: r.update(end_time="yesterday"),
        lambda r: r.update(attendees={"1": {"count": 0, "status": "interested"}}),
        lambda r: r.update(attendees={"1": {"count": 1, "status": "asleep"}}),
        lambda r: r.update(message_refs=["nonsense"]),
    ],
)
def test_malformed_records_raise(mutate) -> None:
    record = make_raid().to_record()
    mutate(record)
    with pytest.raises(MalformedRecord):
        Raid.from_record(record)


def test_message_ref_text_form() -> None:
    ref = MessageRef(12, 34)
    assert str(ref) == "12:34"
    assert MessageRef.parse("12:34") == ref


def test_phase_predicates() -> None:
    raid = make_raid(hatch_time=T0 + timedelta(minutes=10))
    assert raid.has_hatch_time
    assert not raid.has_start_time
    assert not raid.is_clearing_start
    assert not raid.has_end_time
    assert not raid.is_hatch_due(T0 + timedelta(minutes=10))
    assert raid.is_hatch_due(T0 + timedelta(minutes=11))
    raid.egg_hatched = True
    assert not raid.is_hatch_due(T0 + timedelta(minutes=11))


def test_expiry_uses_end_or_last_possible_time() -> None:
    raid = make_raid(lifetime=timedelta(minutes=120))
    assert not raid.is_expired(T0 + timedelta(minutes=60))
    assert raid.is_expired(T0 + timedelta(minutes=121))

    raid.end_time = T0 + timedelta(minutes=30)
    assert raid.is_expired(T0 + timedelta(minutes=31))


def test_deletion_due_only_when_scheduled() -> None:
    raid = make_raid()
    assert not raid.is_due_for_deletion(T0 + timedelta(days=1))
    raid.deletion_time = T0 + timedelta(minutes=15)
    assert not raid.is_due_for_deletion(T0 + timedelta(minutes=15))
    assert raid.is_due_for_deletion(T0 + timedelta(minutes=16))


def test_unresolved_subject_display_name() -> None:
    raid = make_raid(name=None, tier=3)
    assert not raid.is_resolved
    assert raid.subject.display_name == "????"
