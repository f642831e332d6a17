"""Command-line entry point: start the ATC service and connect to the simulator."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Callable

from decimalniner.atc import Service
from decimalniner.mockserver import MockServer
from decimalniner.xpconnect import XPLANE_API_PORT, XPConnect

log = logging.getLogger(__name__)

# Pause after starting the mock server so it is listening before the client connects.
MOCK_STARTUP_DELAY = 0.15


def _port(text: str) -> int:
    try:
        value = int(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid port: {text!r}") from exc
    if not 1 <= value <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {value}")
    return value


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse the command line."""
    parser = argparse.ArgumentParser(
        prog="decimalniner",
        description="Track simulator AI traffic and feed it to the ATC service.",
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="start mock X-Plane server locally",
    )
    parser.add_argument(
        "--port",
        type=_port,
        default=int(XPLANE_API_PORT),
        help="port of the simulator web API (default: %(default)s)",
    )
    return parser.parse_args(argv)


def _install_interrupt_handler(
    loop: asyncio.AbstractEventLoop, callback: Callable[[], None]
) -> Callable[[], None]:
    """Route SIGINT to ``callback``; return a function that undoes it."""
    try:
        loop.add_signal_handler(signal.SIGINT, callback)
    except (NotImplementedError, RuntimeError):
        pass
    else:
        return lambda: loop.remove_signal_handler(signal.SIGINT)

    try:
        previous = signal.signal(signal.SIGINT, lambda signum, frame: callback())
    except ValueError:
        # Not on the main thread: leave signal handling alone.
        return lambda: None
    return lambda: signal.signal(signal.SIGINT, previous)


async def _run(args: argparse.Namespace) -> None:
    mock: MockServer | None = None
    if args.mock:
        log.info("Starting local mock X-Plane server on :%d", args.port)
        mock = MockServer()
        await mock.start(args.port)
        await asyncio.sleep(MOCK_STARTUP_DELAY)

    try:
        atc_service = Service()
        atc_service.run()

        xpc = XPConnect(
            atc_service,
            rest_base_url=f"http://127.0.0.1:{args.port}/api/v2/datarefs",
            ws_url=f"ws://127.0.0.1:{args.port}/api/v2",
        )

        def on_interrupt() -> None:
            log.info("Received interrupt, shutting down...")
            xpc.stop()

        restore = _install_interrupt_handler(asyncio.get_running_loop(), on_interrupt)
        try:
            log.info("Press Ctrl+C to disconnect.")
            await xpc.start()
        finally:
            restore()
    finally:
        if mock is not None:
            await mock.close()


def main(argv: list[str] | None = None) -> int:
    """Run the program; return the process exit status."""
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")
    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        log.info("Received interrupt, shutting down...")
        return 0
    except (OSError, RuntimeError, ValueError) as exc:
        log.error("FATAL: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())