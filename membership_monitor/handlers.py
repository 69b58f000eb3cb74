
# event handlers: the output layer of the pipeline.

# each handler receives one event object and decides what to do with it.
# all formatting decisions live here; the events themselves are kept as
# pure data containers with zero display logic.

# to add a new output target, implement a class with:
#     async def handle(self, event: MembershipEvent) -> None: ...
# and register it with MembershipMonitor.on() in main.py.

import logging
from datetime import datetime, timezone

from membership_monitor.events import EventKind, MembershipEvent, MonitorError, Ready
from membership_monitor.models import format_dt

log = logging.getLogger(__name__)

# ─── Kind colour map (ANSI; safe to strip if plain output is needed) ─────────

_R = "\033[0m"   # reset

_KIND_COLOR: dict[EventKind, str] = {
    EventKind.SUBSCRIBED:   "\033[32m",   # green
    EventKind.REACTIVATED:  "\033[32m",   # green
    EventKind.CONNECTED:    "\033[34m",   # blue
    EventKind.DISCONNECTED: "\033[33m",   # yellow
    EventKind.DECLINED:     "\033[33m",   # yellow
    EventKind.CANCELED:     "\033[31m",   # red
    EventKind.EXPIRED:      "\033[91m",   # bright red
}


def _ts() -> str:
    """ISO 8601 UTC timestamp, e.g. 2026-02-21T12:39:08Z"""
    return datetime.now(tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _color_kind(kind: EventKind) -> str:
    c = _KIND_COLOR.get(kind, "")
    return f"{c}{kind.value.upper()}{_R}" if c else kind.value.upper()


class ConsoleEventHandler:
    """
    Emits one pipe-delimited line per membership event to stdout.

    Format:
        [2026-02-21T12:39:08Z] CONNECTED | Member=123abc | Name=Jane Doe | Linked=80351110224678912 | Pledge=5.00 | Expires=2026-03-01 00:00:00 UTC
    """

    _MAX_NAME_LEN = 40

    async def handle(self, event: MembershipEvent) -> None:
        print(self._format(event), flush=True)

    def handle_error(self, error: MonitorError) -> None:
        log.warning("Monitor error (%s): %s", error.error_kind.value, error.message)

    def handle_ready(self, ready: Ready) -> None:
        log.info("Membership monitor ready, tracking %d member(s)", ready.member_count)

    def _format(self, event: MembershipEvent) -> str:
        r = event.record
        pledge = f"{r.pledge_amount:.2f}" if r.pledge_amount is not None else "N/A"
        return (
            f"[{_ts()}] "
            f"{_color_kind(event.kind)} | "
            f"Member={r.id} | "
            f"Name={self._truncate(r.full_name or 'Unknown')} | "
            f"Linked={r.linked_id or 'N/A'} | "
            f"Pledge={pledge} | "
            f"Expires={format_dt(r.expires_at)}"
        )

    def _truncate(self, text: str) -> str:
        text = " ".join(text.split())          # collapse internal whitespace
        if len(text) <= self._MAX_NAME_LEN:
            return text
        return text[: self._MAX_NAME_LEN - 1].rstrip() + "…"
