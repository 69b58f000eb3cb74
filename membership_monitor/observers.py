
# ObserverRegistry: named-event fan-out to consumer callbacks.

# Listeners may be plain callables or coroutine functions. Plain ones run
# inline; coroutines are scheduled as tasks on the running loop, so emit()
# itself never suspends. That keeps a tick's emit-then-persist step atomic
# with respect to stop().
#
# A listener that raises is logged and skipped. Nothing a consumer does can
# propagate back into the scheduler.

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from membership_monitor.events import EventKind

log = logging.getLogger(__name__)

Listener = Callable[[Any], Any]


class ObserverRegistry:

    def __init__(self) -> None:
        self._listeners: dict[EventKind, list[tuple[Listener, bool]]] = {}
        self._pending: set[asyncio.Task] = set()

    def on(self, kind: EventKind | str, listener: Listener) -> None:
        self._listeners.setdefault(EventKind(kind), []).append((listener, False))

    def once(self, kind: EventKind | str, listener: Listener) -> None:
        self._listeners.setdefault(EventKind(kind), []).append((listener, True))

    def off(self, kind: EventKind | str, listener: Listener) -> None:
        kind = EventKind(kind)
        self._listeners[kind] = [(l, o) for l, o in self._listeners.get(kind, []) if l != listener]

    def emit(self, kind: EventKind | str, payload: Any) -> int:
        """Deliver `payload` to every listener of `kind`. Returns how many were called."""
        kind = EventKind(kind)
        entries = list(self._listeners.get(kind, []))
        if any(once for _, once in entries):
            self._listeners[kind] = [(l, o) for l, o in self._listeners[kind] if not o]

        for listener, _ in entries:
            try:
                result = listener(payload)
            except Exception:
                log.exception("Listener %r for %s raised", listener, kind.value)
                continue
            if inspect.isawaitable(result):
                self._schedule(result, kind)
        return len(entries)

    async def drain(self) -> None:
        """Wait for coroutine listeners scheduled so far."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule(self, awaitable: Any, kind: EventKind) -> None:
        try:
            loop = asyncio.get_running_loop()
            task = asyncio.ensure_future(awaitable, loop=loop)
        except RuntimeError:
            log.warning("No running event loop, dropping async listener for %s", kind.value)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        self._pending.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("Async listener failed: %s", task.exception(), exc_info=task.exception())
