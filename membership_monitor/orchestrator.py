
# MembershipMonitor: the top-level orchestrator.

# Responsibilities:
#   - Load persisted state once, before the first tick
#   - Run one fetch -> reconcile -> emit -> persist tick per poll interval
#   - Flush state on a separate timer and on stop()
#   - Report every failure on the "error" channel without ever stopping itself
#
# Concurrency model:
#   One poll coroutine runs ticks back to back with a sleep in between, so
#   ticks cannot overlap on the schedule. tick() also carries an in-flight
#   flag so an out-of-band check_now() cannot interleave with a scheduled one.
#   The fetch is the only await inside a tick; reconcile, emit and save run
#   without yielding, so cancelling a tick can only ever abandon the fetch.

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import datetime, timezone

import aiohttp

from membership_monitor.config import USER_AGENT, MonitorSettings
from membership_monitor.differ import index_by_linked_id, reconcile
from membership_monitor.events import EventKind, ErrorKind, MonitorError, Ready
from membership_monitor.exceptions import SourceError, StateStoreError
from membership_monitor.http_client import MembershipSource, PatreonMembershipSource
from membership_monitor.models import MembershipRecord
from membership_monitor.observers import Listener, ObserverRegistry
from membership_monitor.state import PersistedState
from membership_monitor.store import JsonStateStore

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class MembershipMonitor:

    def __init__(
        self,
        settings: MonitorSettings,
        *,
        source: MembershipSource | None = None,
        store: JsonStateStore | None = None,
        observers: ObserverRegistry | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._settings = settings
        self._source = source
        self._store = store or JsonStateStore(settings.state_file)
        self._observers = observers or ObserverRegistry()
        self._clock = clock

        self._state: PersistedState | None = None
        self._linked_index: dict[str, MembershipRecord] = {}
        self._first_run = True
        self._ready_pending = True
        self._in_flight = False
        self._stopped = False
        self._tasks: list[asyncio.Task] = []

    # ─── Observer interface ──────────────────────────────────────────────────

    def on(self, kind: EventKind | str, listener: Listener) -> None:
        self._observers.on(kind, listener)

    def once(self, kind: EventKind | str, listener: Listener) -> None:
        self._observers.once(kind, listener)

    def off(self, kind: EventKind | str, listener: Listener) -> None:
        self._observers.off(kind, listener)

    def get_by_linked_id(self, linked_id: str) -> MembershipRecord | None:
        """Look up a member by linked account id, as of the last successful tick."""
        return self._linked_index.get(linked_id.strip())

    @property
    def state(self) -> PersistedState | None:
        return self._state

    @property
    def is_first_run(self) -> bool:
        return self._first_run

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    # ─── Lifecycle ───────────────────────────────────────────────────────────

    def load_state(self) -> PersistedState:
        try:
            loaded = self._store.load()
        except StateStoreError as exc:
            self._report(ErrorKind.PERSISTENCE, str(exc))
            loaded = None
        self._state = loaded or PersistedState.empty()
        return self._state

    async def start(self) -> None:
        """Load state (first time only) and arm the poll and flush timers."""
        if self._tasks:
            return
        if self._source is None:
            raise RuntimeError("No membership source configured; use run() or pass source=")
        if self._state is None:
            self.load_state()

        self._stopped = False
        self._ready_pending = True
        self._tasks = [
            asyncio.create_task(self._poll_loop(), name="membership-poll"),
            asyncio.create_task(self._flush_loop(), name="membership-flush"),
        ]

    async def run(self) -> None:
        """Start monitoring and block until stop(). Survives restart()."""
        owns_source = self._source is None
        try:
            async with contextlib.AsyncExitStack() as stack:
                if owns_source:
                    session = await stack.enter_async_context(
                        aiohttp.ClientSession(headers={"User-Agent": USER_AGENT})
                    )
                    self._source = PatreonMembershipSource(session, self._settings)

                await self.start()
                log.info(
                    "MembershipMonitor running, polling campaign %s every %ss. Press Ctrl+C to stop.",
                    self._settings.campaign_id, self._settings.poll_interval,
                )

                # restart() swaps in fresh tasks; keep waiting until none are left
                while self._tasks:
                    current = self._tasks
                    await asyncio.gather(*current, return_exceptions=True)
                    if self._tasks is current:
                        break
        finally:
            if not self._stopped:
                self.stop()
            if owns_source:
                self._source = None

    def stop(self) -> None:
        """
        Halt both timers and flush state. No tick starts after this returns;
        a tick suspended in its fetch is abandoned before it touches state.
        """
        self._stopped = True
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        self.flush()
        log.info("MembershipMonitor stopped.")

    async def restart(self) -> None:
        """
        Stop, flush, and re-arm the timers. State, observers and first-run
        status are kept; ready fires again after the next successful tick.
        """
        self.stop()
        await self.start()

    def flush(self) -> bool:
        if self._state is None:
            return False
        try:
            self._store.save(self._state)
        except StateStoreError as exc:
            self._report(ErrorKind.PERSISTENCE, str(exc))
            return False
        return True

    # ─── Ticks ───────────────────────────────────────────────────────────────

    async def tick(self) -> bool:
        """
        Run one fetch -> reconcile -> emit -> persist cycle.

        Returns True if the tick completed, False if it was skipped (another
        tick in flight, or the monitor is stopped) or aborted by an error.
        """
        if self._stopped:
            return False
        if self._in_flight:
            log.debug("Tick already in flight, skipping")
            return False

        self._in_flight = True
        try:
            return await self._tick()
        finally:
            self._in_flight = False

    check_now = tick

    async def _tick(self) -> bool:
        if self._state is None:
            self.load_state()

        try:
            records = await self._source.fetch_all()
        except SourceError as exc:
            self._report(ErrorKind.SOURCE, str(exc))
            return False
        except Exception as exc:
            log.exception("Unexpected error fetching members")
            self._report(ErrorKind.SOURCE, f"{type(exc).__name__}: {exc}")
            return False

        if self._stopped:
            log.debug("Stopped while fetching, discarding batch of %d", len(records))
            return False

        try:
            result = reconcile(self._state, records, self._first_run, now=self._clock())
        except Exception as exc:
            log.exception("Reconciliation failed")
            self._report(ErrorKind.RECONCILE, f"{type(exc).__name__}: {exc}")
            return False

        for record in result.rejected:
            self._report(
                ErrorKind.MALFORMED_RECORD,
                f"Skipped member record without an id (status={record.status.value})",
            )

        self._state = result.state
        self._linked_index = index_by_linked_id(records)

        for event in result.events:
            self._observers.emit(event.kind, event)

        self._first_run = False
        self.flush()

        # once per start()/restart(), after its first successful tick
        if self._ready_pending:
            self._ready_pending = False
            self._observers.emit(EventKind.READY, Ready(member_count=len(self._state.memberships)))
        return True

    async def _poll_loop(self) -> None:
        log.info("Started polling %s", self._settings.members_url)
        while not self._stopped:
            try:
                await self.tick()
            except asyncio.CancelledError:
                log.info("Poll loop cancelled.")
                raise
            except Exception as exc:
                log.exception("Unexpected error in poll loop: %s", exc)
                self._report(ErrorKind.RECONCILE, f"{type(exc).__name__}: {exc}")

            await asyncio.sleep(self._settings.poll_interval)

    async def _flush_loop(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self._settings.flush_interval)
            self.flush()

    def _report(self, kind: ErrorKind, message: str) -> None:
        log.warning("%s error: %s", kind.value, message)
        self._observers.emit(EventKind.ERROR, MonitorError(error_kind=kind, message=message))
