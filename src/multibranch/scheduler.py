"""The recurring sync trigger and its self-repairing owner."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, cast

from .constants import DEFAULT_SYNC_SPEC
from .cron import CronSpec
from .errors import ScheduleConfigError

logger = logging.getLogger(__name__)

IDLE_WAIT_SECONDS = 3600.0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Trigger:
    """A recurring trigger attached to a project."""

    def __init__(self, spec: str | None) -> None:
        self.spec = spec
        self.started = False

    def start(self, callback: Callable[[], Any], run_timer: bool = True) -> None:
        self.started = True

    def stop(self) -> None:
        self.started = False


class SyncTrigger(Trigger):
    """Runs branch reconciliation on a cron schedule.

    A started trigger owns one daemon thread that sleeps until the next fire
    time. ``stop`` only signals the thread; it never joins it, because the
    callback may be blocked on the lock held by whoever is stopping it.
    """

    def __init__(
        self,
        spec: str | None,
        cron: CronSpec | None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__(spec)
        self.cron = cron
        self._now_fn = now_fn or _utc_now
        self._callback: Callable[[], Any] | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @classmethod
    def from_spec(
        cls,
        spec: str,
        seed: str = "",
        now_fn: Callable[[], datetime] | None = None,
    ) -> SyncTrigger:
        """Build a trigger, raising ScheduleConfigError for a bad spec."""
        return cls(spec, CronSpec.parse(spec, seed), now_fn)

    @classmethod
    def restore(
        cls,
        spec: str | None,
        seed: str = "",
        now_fn: Callable[[], datetime] | None = None,
    ) -> SyncTrigger:
        """Rebuild a stored trigger without rejecting invalid state."""
        try:
            cron = CronSpec.parse(spec, seed) if spec is not None else None
        except ScheduleConfigError:
            logger.warning("Stored sync trigger spec %r is invalid", spec)
            cron = None
        return cls(spec, cron, now_fn)

    @property
    def valid(self) -> bool:
        return self.spec is not None and self.cron is not None

    def start(self, callback: Callable[[], Any], run_timer: bool = True) -> None:
        if self.started:
            return
        self._callback = callback
        self.started = True
        if not run_timer or self.cron is None:
            return
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._loop,
            args=(self._stop_event,),
            name=f"sync-trigger[{self.spec}]",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self.started = False
        self._stop_event.set()
        self._thread = None

    def run(self) -> Any:
        if self._callback is None:
            raise ScheduleConfigError(
                "Sync trigger has not been started",
                "Start the trigger before running it.",
            )
        return self._callback()

    def _loop(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            now = self._now_fn()
            next_fire = self.cron.next_fire_after(now) if self.cron else None
            if next_fire is None:
                stop_event.wait(IDLE_WAIT_SECONDS)
                continue
            delay = max(0.0, (next_fire - now).total_seconds())
            if stop_event.wait(delay):
                return
            try:
                self.run()
            except Exception:  # noqa: BLE001
                logger.exception("Scheduled branch sync failed")


class SyncScheduler:
    """Own exactly one SyncTrigger per project and repair anything else."""

    def __init__(
        self,
        seed: str,
        callback: Callable[[], Any],
        lock: threading.RLock | None = None,
        default_spec: str = DEFAULT_SYNC_SPEC,
        triggers: list[Trigger] | None = None,
        run_timers: bool = True,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self.seed = seed
        self.default_spec = default_spec
        self.run_timers = run_timers
        self.triggers: list[Trigger] = list(triggers or [])
        self._callback = callback
        self._lock = lock or threading.RLock()
        self._now_fn = now_fn

    @classmethod
    def restore(
        cls,
        seed: str,
        callback: Callable[[], Any],
        stored_specs: list[str | None],
        **kwargs: Any,
    ) -> SyncScheduler:
        now_fn = kwargs.get("now_fn")
        triggers: list[Trigger] = [
            SyncTrigger.restore(spec, seed, now_fn) for spec in stored_specs
        ]
        return cls(seed, callback, triggers=triggers, **kwargs)

    def is_valid(self) -> bool:
        return (
            len(self.triggers) == 1
            and isinstance(self.triggers[0], SyncTrigger)
            and self.triggers[0].valid
        )

    def sync_trigger(self) -> SyncTrigger | None:
        """Return the single trigger, repairing the trigger list first if needed."""
        with self._lock:
            if self.is_valid():
                return cast(SyncTrigger, self.triggers[0])

            spec = next(
                (
                    trigger.spec
                    for trigger in self.triggers
                    if isinstance(trigger, SyncTrigger) and trigger.valid
                ),
                self.default_spec,
            )
            logger.warning(
                "Repairing sync triggers for %s (%d found), using spec %r",
                self.seed,
                len(self.triggers),
                spec,
            )
            try:
                self.restart(spec)
            except ScheduleConfigError:
                logger.error(
                    "Unable to build a sync trigger for %s; no schedule is active",
                    self.seed,
                    exc_info=True,
                )
                for trigger in self.triggers:
                    trigger.stop()
                self.triggers = []
                return None
            return cast(SyncTrigger, self.triggers[0])

    def restart(self, spec: str | None) -> None:
        """Replace the trigger list with one trigger for ``spec`` and restart.

        ``None`` keeps whatever triggers exist and only restarts them.
        """
        with self._lock:
            replacement = (
                SyncTrigger.from_spec(spec, self.seed, self._now_fn) if spec is not None else None
            )
            for trigger in self.triggers:
                trigger.stop()
            if replacement is not None:
                self.triggers = [replacement]
            for trigger in self.triggers:
                trigger.start(self._callback, run_timer=self.run_timers)

    def start(self) -> None:
        with self._lock:
            if self.sync_trigger() is None:
                return
            for trigger in self.triggers:
                trigger.start(self._callback, run_timer=self.run_timers)

    @property
    def spec(self) -> str | None:
        trigger = self.sync_trigger()
        return trigger.spec if trigger else None

    def next_fire_after(self, moment: datetime) -> datetime | None:
        trigger = self.sync_trigger()
        if trigger is None or trigger.cron is None:
            return None
        return trigger.cron.next_fire_after(moment)

    def run_now(self) -> Any:
        trigger = self.sync_trigger()
        if trigger is None or not trigger.started:
            return self._callback()
        return trigger.run()

    def shutdown(self) -> None:
        with self._lock:
            for trigger in self.triggers:
                trigger.stop()

    def stored_specs(self) -> list[str | None]:
        with self._lock:
            return [trigger.spec for trigger in self.triggers]
