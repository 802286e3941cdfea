import logging

from argparse import ArgumentParser
from contextlib import aclosing, AsyncExitStack
from typing import List, Optional

from mavlink_monitor.io.serial import DEFAULT_BAUDRATE
from mavlink_monitor.monitor import (
    DEFAULT_STARTUP_COMMAND,
    LogEvent,
    Monitor,
    MonitorEventHandler,
)
from mavlink_monitor.scanners.base import Scanner
from mavlink_monitor.scanners.fixed import FixedPortList
from mavlink_monitor.scanners.serial import SerialPortScanner

from .rich_ui import RichConsoleUI


def create_parser() -> ArgumentParser:
    """Creates the command line parser for the monitor CLI."""
    parser = ArgumentParser(
        description="Prints the MAVLink messages received on serial ports"
    )
    parser.add_argument(
        "-p",
        "--port",
        help=(
            "serial port or pyserial URL to read; may be given multiple times. "
            "Serial ports are detected automatically when omitted"
        ),
        action="append",
    )
    parser.add_argument(
        "-b",
        "--baud",
        metavar="RATE",
        type=int,
        help=f"baud rate of the serial ports (default: {DEFAULT_BAUDRATE})",
        default=DEFAULT_BAUDRATE,
    )
    parser.add_argument(
        "--startup-command",
        metavar="COMMAND",
        help="command to send to each port after it was opened",
        default=DEFAULT_STARTUP_COMMAND.strip(),
    )
    parser.add_argument(
        "--no-startup-command",
        dest="startup_command",
        action="store_const",
        const="",
        help="do not send any command to the ports after they were opened",
    )
    parser.add_argument(
        "--retries",
        metavar="COUNT",
        type=int,
        help="re-open failed ports COUNT times before giving up",
        default=3,
    )
    parser.add_argument(
        "--clear",
        action="store_true",
        help="clear the console before starting",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="also print debug messages, e.g. about dropped frames",
    )
    return parser


async def monitor(options, on_event: MonitorEventHandler) -> None:
    ports: List[str] = options.port
    retries: int = max(options.retries, 0)
    startup_command: Optional[str] = (
        f"{options.startup_command}\n" if options.startup_command else None
    )

    async with AsyncExitStack() as stack:
        mon = await stack.enter_async_context(
            Monitor(startup_command=startup_command, baudrate=options.baud).use()
        )

        task_group = await stack.enter_async_context(
            mon.create_task_group(on_event=on_event, retries=retries)
        )

        scanner: Scanner
        if ports:
            scanner = FixedPortList(ports)
        else:
            on_event(
                "",
                LogEvent(
                    logging.INFO,
                    "Waiting for flight controllers and telemetry radios, "
                    "^C to exit...",
                ),
            )
            scanner = SerialPortScanner()

        port_event_generator = mon.generate_port_events_from(scanner)
        async with aclosing(port_event_generator) as port_events:  # type: ignore
            async for event in port_events:
                task_group.handle_port_event(event, notify=not ports)


def main() -> None:
    from anyio import run

    parser = create_parser()
    options = parser.parse_args()

    try:
        with RichConsoleUI(verbose=options.verbose) as ui:
            if options.clear:
                ui.clear()
            run(monitor, options, ui.handle_event)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
