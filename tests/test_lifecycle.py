import asyncio
from datetime import timedelta

import structlog

from helpers import CREATOR, T0, FakeClock, FakeGateway, make_raid, register, running_engine

from raidbot.errors import PersistenceFailure
from raidbot.lifecycle import (
    ARCHIVED,
    EXPIRY_WARNING,
    HATCH,
    START_ARMED,
    START_CLEARED,
    advance_raid,
    sweep_once,
)
from raidbot.raid import Attendee, AttendeeStatus


def minutes(n: float):
    return T0 + timedelta(minutes=n)


def test_hatch_fires_once() -> None:
    async def _run():
        async with running_engine() as engine:
            await register(
                engine,
                make_raid(name=None, hatch_time=minutes(10), end_time=minutes(55)),
            )
            assert await sweep_once(engine, minutes(10)) == {}
            assert await sweep_once(engine, minutes(11)) == {100: [HATCH]}
            assert engine.registry.get(100).egg_hatched
            assert await sweep_once(engine, minutes(12)) == {}

    asyncio.run(_run())


def test_hatch_does_not_rearm_after_new_hatch_time() -> None:
    async def _run():
        async with running_engine() as engine:
            await register(
                engine,
                make_raid(name=None, hatch_time=minutes(1), end_time=minutes(46)),
            )
            await sweep_once(engine, minutes(2))
            await engine.registry.update(
                100, lambda r: setattr(r, "hatch_time", minutes(5))
            )
            assert HATCH not in (await sweep_once(engine, minutes(6))).get(100, [])

    asyncio.run(_run())


def test_start_window_arms_then_clears_and_polls() -> None:
    async def _run():
        gateway = FakeGateway()
        gateway.add_member(2, "Misty")
        gateway.replies[2] = "yes"
        async with running_engine(gateway) as engine:
            await register(
                engine,
                make_raid(
                    start_time=minutes(5),
                    attendees={
                        CREATOR: Attendee(1, AttendeeStatus.COMING),
                        2: Attendee(1, AttendeeStatus.PRESENT),
                    },
                ),
            )
            assert await sweep_once(engine, minutes(6)) == {100: [START_ARMED]}
            raid = engine.registry.get(100)
            assert raid.start_clear_time == minutes(21)
            assert raid.is_clearing_start

            assert await sweep_once(engine, minutes(10)) == {}
            assert await sweep_once(engine, minutes(22)) == {100: [START_CLEARED]}
            raid = engine.registry.get(100)
            assert not raid.has_start_time
            assert not raid.is_clearing_start

            await engine.effects.drain()
            assert [member for member, *_ in gateway.asked] == [2]
            assert engine.registry.get(100).attendees[2].status is AttendeeStatus.COMPLETE
            assert engine.registry.get(100).attendees[CREATOR].status is AttendeeStatus.COMING

            # a new planned start arms again
            await engine.registry.update(100, lambda r: setattr(r, "start_time", minutes(30)))
            assert await sweep_once(engine, minutes(31)) == {100: [START_ARMED]}

    asyncio.run(_run())


def test_hung_poll_does_not_block_sweep() -> None:
    async def _run():
        gateway = FakeGateway()
        gateway.add_member(2, "Misty")
        async with running_engine(gateway) as engine:
            gateway.replies[2] = asyncio.Event()
            await register(
                engine,
                make_raid(
                    start_time=minutes(0),
                    start_clear_time=minutes(1),
                    attendees={2: Attendee(1, AttendeeStatus.PRESENT)},
                ),
            )
            assert await sweep_once(engine, minutes(2)) == {100: [START_CLEARED]}
            assert await sweep_once(engine, minutes(3)) == {}
            assert engine.registry.get(100).attendees[2].status is AttendeeStatus.PRESENT

            gateway.replies[2].set()
            await engine.effects.drain()
            assert engine.registry.get(100).attendees[2].status is AttendeeStatus.COMPLETE

    asyncio.run(_run())


def test_expiry_warns_once_and_deletion_archives() -> None:
    async def _run():
        gateway = FakeGateway()
        async with running_engine(gateway) as engine:
            announcement = gateway.post(500, "announcement")
            await register(
                engine, make_raid(end_time=minutes(30), announcement_ref=announcement)
            )

            assert await sweep_once(engine, minutes(31)) == {100: [EXPIRY_WARNING]}
            assert engine.registry.get(100).deletion_time == minutes(46)
            await engine.effects.drain()
            warnings = [c for channel, c in gateway.sent if channel == 100]
            assert len(warnings) == 1
            assert warnings[0].startswith("**WARNING** - this channel will be deleted")

            assert await sweep_once(engine, minutes(40)) == {}
            await engine.effects.drain()
            assert len([c for channel, c in gateway.sent if channel == 100]) == 1

            assert await sweep_once(engine, minutes(47)) == {100: [ARCHIVED]}
            assert not engine.registry.exists(100)
            await engine.effects.drain()
            assert gateway.deleted_channels == [100]
            assert announcement not in gateway.messages

            archived = await engine.registry.store.archive_for("g1")
            assert [r.channel_id for r in archived] == [100]
            assert archived[0].announcement_ref is None
            assert await engine.registry.store.get(100) is None

            assert await sweep_once(engine, minutes(60)) == {}
            assert len(await engine.registry.store.archive_for("g1")) == 1

    asyncio.run(_run())


def test_last_possible_time_expires_raid_without_end_time() -> None:
    async def _run():
        async with running_engine() as engine:
            await register(engine, make_raid(lifetime=timedelta(minutes=120)))
            assert await sweep_once(engine, minutes(119)) == {}
            assert await sweep_once(engine, minutes(121)) == {100: [EXPIRY_WARNING]}

    asyncio.run(_run())


def test_several_transitions_in_one_tick() -> None:
    async def _run():
        async with running_engine() as engine:
            await register(
                engine,
                make_raid(
                    name=None,
                    hatch_time=minutes(1),
                    start_time=minutes(2),
                    end_time=minutes(3),
                ),
            )
            fired = await advance_raid(engine, 100, minutes(100))
            assert fired == [HATCH, START_ARMED, EXPIRY_WARNING]
            raid = engine.registry.get(100)
            assert raid.egg_hatched
            assert raid.start_clear_time == minutes(115)
            assert raid.deletion_time == minutes(115)

    asyncio.run(_run())


def test_failing_raid_does_not_stop_sweep(monkeypatch) -> None:
    async def _run():
        async with running_engine() as engine:
            await register(engine, make_raid(100, end_time=minutes(1)))
            await register(engine, make_raid(101, end_time=minutes(1)))
            store = engine.registry.store
            real_save = store.save

            async def flaky_save(raid):
                if raid.channel_id == 100:
                    raise PersistenceFailure("disk full")
                await real_save(raid)

            monkeypatch.setattr(store, "save", flaky_save)
            with structlog.testing.capture_logs() as logs:
                results = await sweep_once(engine, minutes(2))

            assert results == {101: [EXPIRY_WARNING]}
            assert engine.registry.get(100).deletion_time is None
            assert any(
                entry["event"] == "lifecycle.raid_failed" and entry["channel_id"] == 100
                for entry in logs
            )

    asyncio.run(_run())


def test_failed_warning_is_logged_and_state_kept() -> None:
    async def _run():
        gateway = FakeGateway()
        gateway.fail_sends = True
        async with running_engine(gateway) as engine:
            await register(engine, make_raid(end_time=minutes(1)))
            with structlog.testing.capture_logs() as logs:
                assert await sweep_once(engine, minutes(2)) == {100: [EXPIRY_WARNING]}
                await engine.effects.drain()

            assert engine.registry.get(100).deletion_time == minutes(17)
            assert (await engine.registry.store.get(100)).deletion_time == minutes(17)
            assert any(
                entry["event"] == "side_effect.failed"
                and entry["effect"] == "warn:100"
                for entry in logs
            )

    asyncio.run(_run())


def test_missing_channel_during_warning_removes_raid() -> None:
    async def _run():
        gateway = FakeGateway()
        async with running_engine(gateway) as engine:
            await register(engine, make_raid(end_time=minutes(1)))
            gateway.channels.discard(100)
            await sweep_once(engine, minutes(2))
            await engine.effects.drain()
            assert not engine.registry.exists(100)
            assert await engine.registry.store.get(100) is None

    asyncio.run(_run())


def test_status_messages_refresh_after_transition() -> None:
    async def _run():
        gateway = FakeGateway()
        async with running_engine(gateway, clock=FakeClock(minutes(2))) as engine:
            status = gateway.post(100, "status")
            await register(
                engine,
                make_raid(name=None, hatch_time=minutes(1), message_refs=[status]),
            )
            await sweep_once(engine, minutes(2))
            await engine.effects.drain()
            assert status in gateway.edited
            embed = gateway.messages[status]["embed"]
            assert any(field.name == "__Egg Hatched At__" for field in embed.fields)

    asyncio.run(_run())
