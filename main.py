import asyncio
import logging
import platform
import signal
import sys

from membership_monitor.config import MonitorSettings
from membership_monitor.events import EVENT_TYPES, EventKind
from membership_monitor.exceptions import ConfigError
from membership_monitor.handlers import ConsoleEventHandler
from membership_monitor.orchestrator import MembershipMonitor

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)],
)
log = logging.getLogger("main")


def build_monitor(settings: MonitorSettings) -> MembershipMonitor:
    monitor = MembershipMonitor(settings)
    handler = ConsoleEventHandler()
    for kind in EVENT_TYPES:
        monitor.on(kind, handler.handle)
    monitor.on(EventKind.ERROR, handler.handle_error)
    monitor.once(EventKind.READY, handler.handle_ready)
    return monitor


async def main() -> int:
    try:
        settings = MonitorSettings.from_env()
    except ConfigError as exc:
        log.error("Configuration error: %s", exc)
        return 2

    monitor = build_monitor(settings)
    loop    = asyncio.get_running_loop()

    if platform.system() != "Windows":

        def _shutdown(sig: signal.Signals) -> None:
            log.info("Received %s, shutting down gracefully...", sig.name)
            monitor.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _shutdown, sig)

        try:
            await monitor.run()
        except asyncio.CancelledError:
            log.info("Monitor stopped.")

    else:
        try:
            await monitor.run()
        except (asyncio.CancelledError, KeyboardInterrupt):
            log.info("Shutting down...")
            monitor.stop()
            log.info("Monitor stopped.")

    return 0


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
