from __future__ import annotations

from datetime import datetime, timezone

import pytest

from multibranch.errors import ScheduleConfigError
from multibranch.scheduler import SyncScheduler, SyncTrigger, Trigger


class _Recorder:
    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        return "ran"


def _scheduler(triggers: list[Trigger], callback=None, **kwargs) -> SyncScheduler:
    return SyncScheduler(
        "demo",
        callback or _Recorder(),
        triggers=triggers,
        run_timers=False,
        **kwargs,
    )


def test_empty_trigger_list_is_repaired_with_default_spec() -> None:
    scheduler = _scheduler([], default_spec="H/10 * * * *")
    trigger = scheduler.sync_trigger()
    assert trigger is not None
    assert trigger.spec == "H/10 * * * *"
    assert scheduler.stored_specs() == ["H/10 * * * *"]
    assert trigger.started


def test_repair_keeps_first_valid_spec() -> None:
    invalid = SyncTrigger.restore(None, "demo")
    valid = SyncTrigger.restore("0 3 * * *", "demo")
    scheduler = _scheduler([invalid, valid])
    trigger = scheduler.sync_trigger()
    assert trigger is not None
    assert trigger.spec == "0 3 * * *"
    assert len(scheduler.triggers) == 1


def test_repair_drops_foreign_triggers() -> None:
    foreign = Trigger("0 0 * * *")
    scheduler = _scheduler([foreign], default_spec="H * * * *")
    trigger = scheduler.sync_trigger()
    assert isinstance(trigger, SyncTrigger)
    assert scheduler.stored_specs() == ["H * * * *"]
    assert foreign.started is False


def test_restored_invalid_spec_is_replaced() -> None:
    scheduler = SyncScheduler.restore(
        "demo",
        _Recorder(),
        ["not a cron"],
        default_spec="H/5 * * * *",
        run_timers=False,
    )
    assert scheduler.is_valid() is False
    assert scheduler.spec == "H/5 * * * *"
    assert scheduler.is_valid()


def test_sync_trigger_is_idempotent() -> None:
    scheduler = _scheduler([SyncTrigger.from_spec("*/5 * * * *", "demo")])
    first = scheduler.sync_trigger()
    second = scheduler.sync_trigger()
    assert first is second


def test_invalid_default_spec_leaves_no_schedule() -> None:
    scheduler = _scheduler([], default_spec="bogus")
    assert scheduler.sync_trigger() is None
    assert scheduler.triggers == []
    assert scheduler.spec is None


def test_restart_with_invalid_spec_keeps_running_trigger() -> None:
    scheduler = _scheduler([SyncTrigger.from_spec("*/5 * * * *", "demo")])
    scheduler.start()
    original = scheduler.sync_trigger()
    with pytest.raises(ScheduleConfigError):
        scheduler.restart("61 * * * *")
    assert scheduler.sync_trigger() is original
    assert original is not None and original.started


def test_restart_replaces_trigger_and_stops_old_one() -> None:
    scheduler = _scheduler([SyncTrigger.from_spec("*/5 * * * *", "demo")])
    scheduler.start()
    old = scheduler.sync_trigger()
    scheduler.restart("0 * * * *")
    new = scheduler.sync_trigger()
    assert new is not old
    assert new is not None and new.started
    assert old is not None and not old.started
    assert scheduler.spec == "0 * * * *"


def test_restart_none_restarts_existing_triggers() -> None:
    trigger = SyncTrigger.from_spec("*/5 * * * *", "demo")
    scheduler = _scheduler([trigger])
    scheduler.restart(None)
    assert scheduler.sync_trigger() is trigger
    assert trigger.started


def test_run_now_invokes_callback() -> None:
    recorder = _Recorder()
    scheduler = _scheduler([], callback=recorder)
    assert scheduler.run_now() == "ran"
    scheduler.start()
    assert scheduler.run_now() == "ran"
    assert recorder.calls == 2


def test_run_on_unstarted_trigger_raises() -> None:
    trigger = SyncTrigger.from_spec("*/5 * * * *", "demo")
    with pytest.raises(ScheduleConfigError):
        trigger.run()


def test_next_fire_after_uses_trigger_schedule() -> None:
    scheduler = _scheduler([SyncTrigger.from_spec("0 * * * *", "demo")])
    moment = datetime(2024, 1, 1, 10, 15, tzinfo=timezone.utc)
    assert scheduler.next_fire_after(moment) == datetime(2024, 1, 1, 11, 0, tzinfo=timezone.utc)


def test_shutdown_stops_triggers() -> None:
    scheduler = _scheduler([SyncTrigger.from_spec("*/5 * * * *", "demo")])
    scheduler.start()
    scheduler.shutdown()
    assert all(not trigger.started for trigger in scheduler.triggers)


def test_timer_thread_stops_without_join() -> None:
    trigger = SyncTrigger.from_spec("*/5 * * * *", "demo")
    trigger.start(_Recorder(), run_timer=True)
    thread = trigger._thread
    assert thread is not None and thread.daemon
    trigger.stop()
    thread.join(timeout=5)
    assert not thread.is_alive()
