import logging
import sys

from anyio import (
    CancelScope,
    EndOfStream,
    create_task_group,
    get_cancelled_exc_class,
    sleep,
)
from anyio.abc import TaskGroup
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from functools import partial
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Callable,
    Dict,
    Optional,
    TypeVar,
)

from .decoder import Frame, Invalid
from .dispatcher import MessageDispatcher
from .io import Transport, create_transport
from .messages import DEFAULT_REGISTRY, MessageRegistry
from .scanners.base import PortEvent, Scanner

if sys.version_info < (3, 11):
    from exceptiongroup import BaseExceptionGroup


__all__ = (
    "DEFAULT_STARTUP_COMMAND",
    "LogEvent",
    "MessageEvent",
    "Monitor",
    "MonitorEvent",
    "MonitorEventHandler",
    "MonitorTaskGroup",
    "NOTIFICATION_TIMEOUT",
    "NotificationEvent",
    "NotificationExpiredEvent",
    "PortLifecycleEvent",
)


DEFAULT_STARTUP_COMMAND = "mavlink start -d /dev/ttyACM0\n"
"""Command sent to the remote end once the port is opened, asking the NuttX
shell of the flight controller to start a MAVLink session on its USB port.
"""

NOTIFICATION_TIMEOUT = 3.0
"""Number of seconds after which a notification is withdrawn."""


class MonitorEvent:
    """Base class for events emitted by the monitor."""

    __slots__ = ()


MonitorEventHandler = Callable[[str, MonitorEvent], None]
"""Type alias for functions that take a monitor event and do something with
it. Used by user interfaces to provide a callback that the monitor can call
when an event occurs.

The first argument is the source of the event (typically the name of the
port that the event belongs to, or an empty string for global events), the
second is the event itself.
"""


@dataclass
class PortLifecycleEvent(MonitorEvent):
    """Lifecycle events emitted by the monitor when a port is opened, closed,
    removed from the system or encounters an error.
    """

    type: str
    """The type of the event: ``opened``, ``closed``, ``removed`` or
    ``error``.
    """

    reason: Optional[str] = None
    """Human-readable reason of the event; used for ``error`` events."""


@dataclass
class MessageEvent(MonitorEvent):
    """Event that reports a MAVLink message received on a port."""

    __slots__ = ("description", "frame")

    description: str
    """Human-readable, newline-terminated description of the message."""

    frame: Frame
    """The frame that carried the message."""


@dataclass
class LogEvent(MonitorEvent):
    """Debug event that may contain any arbitrary message with an associated
    log level.
    """

    __slots__ = ("level", "message")

    level: int
    """Log level of the message"""

    message: str
    """The message itself"""


@dataclass(eq=False)
class NotificationEvent(MonitorEvent):
    """Transient notification for the user, e.g. about a serial port that was
    connected to the system. Each notification is followed by a
    NotificationExpiredEvent_ after a while.
    """

    title: str
    """Short title of the notification."""

    text: str
    """Informative text of the notification."""


@dataclass
class NotificationExpiredEvent(MonitorEvent):
    """Event that tells the user interface to withdraw a notification."""

    __slots__ = ("notification",)

    notification: NotificationEvent
    """The notification to withdraw."""


C = TypeVar("C", bound="Monitor")


class Monitor:
    """Object that reads MAVLink frames from serial ports and reports the
    messages they carry as events.

    The monitor holds no per-port state; each port is watched with its own
    dispatcher and frame decoder.
    """

    link_settings: Dict[str, Any]
    """Keyword arguments forwarded to the transport factory when opening a
    port, e.g. the baud rate.
    """

    registry: MessageRegistry
    """The registry of the message types that the monitor can describe."""

    startup_command: Optional[str]
    """ASCII command to send once to each port after it was opened; ``None``
    if no command needs to be sent.
    """

    notification_timeout: float
    """Number of seconds after which notifications are withdrawn."""

    _task_group: Optional[TaskGroup] = None
    """The task group used privately by the monitor to run its private tasks."""

    def __init__(
        self,
        *,
        registry: MessageRegistry = DEFAULT_REGISTRY,
        startup_command: Optional[str] = DEFAULT_STARTUP_COMMAND,
        notification_timeout: float = NOTIFICATION_TIMEOUT,
        **link_settings: Any,
    ):
        """Constructor.

        Parameters:
            registry: the registry of the message types that the monitor can
                describe
            startup_command: command to send to each port after it was opened
            notification_timeout: number of seconds after which notifications
                posted by the monitor are withdrawn
            link_settings: settings of the serial link (``baudrate``,
                ``parity``, ``stopbits`` etc.) to override the defaults with
        """
        self.registry = registry
        self.startup_command = startup_command
        self.notification_timeout = notification_timeout
        self.link_settings = link_settings

    def create_dispatcher(
        self, on_event: Callable[[MonitorEvent], None]
    ) -> MessageDispatcher:
        """Creates a new dispatcher for a single port that reports the frames
        dropped by its decoder as debug log events.
        """
        return MessageDispatcher(
            registry=self.registry, on_drop=partial(self._report_drop, on_event)
        )

    def create_task_group(
        self,
        *,
        on_event: MonitorEventHandler,
        retries: int = 0,
        retry_delay: float = 1,
    ) -> "MonitorTaskGroup":
        """Creates a task group that is responsible for watching multiple
        ports in parallel, with configurable retry counts, in a way that the
        tasks are shielded from errors in other tasks.

        Parameters:
            on_event: a synchronous callback to call when an event happens
                on any of the ports. The callback will be called with the
                port that the event belongs to and the event itself.
                Typically this is tied to a user interface object.
            retries: number of times a port is re-opened after an error
                before the task group gives up on it
            retry_delay: number of seconds to wait before re-opening a port
        """
        return MonitorTaskGroup(
            self, on_event=on_event, retries=retries, retry_delay=retry_delay
        )

    async def generate_port_events_from(
        self, scanner: Scanner
    ) -> AsyncIterable[PortEvent]:
        async for event in scanner.run():
            yield event

    def post_notification(
        self, title: str, text: str, *, on_event: Callable[[MonitorEvent], None]
    ) -> NotificationEvent:
        """Posts a notification to the user and schedules its withdrawal after
        the notification timeout of the monitor.

        Returns:
            the notification that was posted
        """
        if self._task_group is None:
            raise RuntimeError("monitor is not in use yet")

        notification = NotificationEvent(title, text)
        on_event(notification)
        self._task_group.start_soon(self._expire_notification, notification, on_event)
        return notification

    @asynccontextmanager
    async def use(self: C) -> AsyncIterator[C]:
        async with create_task_group() as tg:
            try:
                self._task_group = tg
                yield self
                tg.cancel_scope.cancel()
            finally:
                self._task_group = None

    async def watch(
        self,
        port: str,
        *,
        on_event: Callable[[MonitorEvent], None],
        transport: Optional[Transport] = None,
        dispatcher: Optional[MessageDispatcher] = None,
    ) -> None:
        """Runs an asynchronous task that reads the given port until the
        remote end closes it and reports the messages received on it.

        Parameters:
            port: the name of the serial port or a ``pyserial`` URL
            on_event: a synchronous callback to call when an event happens
                on the port. The callback will be called with the event as
                its only argument.
            transport: the transport to read; a serial port transport is
                created from the port name when omitted
            dispatcher: the dispatcher that tracks the frames of the port.
                Passing the same dispatcher to consecutive calls keeps the
                state of the decoder across reconnections.

        Raises:
            OSError: when the port cannot be opened or read. The error is
                reported with an ``error`` lifecycle event as well.
        """
        if dispatcher is None:
            dispatcher = self.create_dispatcher(on_event)

        opened = False

        try:
            if transport is None:
                transport = create_transport(port, **self.link_settings)

            async with transport:
                opened = True
                on_event(PortLifecycleEvent(type="opened"))

                if self.startup_command:
                    await transport.send(self.startup_command.encode("ascii"))

                while True:
                    try:
                        data = await transport.receive()
                    except EndOfStream:
                        break

                    for frame in dispatcher.process_frames(data):
                        on_event(MessageEvent(dispatcher.describe(frame), frame))

        except get_cancelled_exc_class():
            raise
        except Exception as ex:
            # Errors of the worker threads of a transport arrive wrapped in an
            # exception group
            error = _find_os_error(ex)
            if error is None:
                raise

            on_event(PortLifecycleEvent(type="error", reason=_describe_error(error)))
            if error is ex:
                raise
            raise error from ex
        finally:
            if opened:
                stats = dispatcher.decoder.statistics
                on_event(
                    LogEvent(
                        logging.DEBUG,
                        f"{stats.frames_received} frames received, "
                        f"{stats.frames_dropped} dropped, "
                        f"{stats.bytes_skipped} bytes skipped",
                    )
                )
                on_event(PortLifecycleEvent(type="closed"))

    async def _expire_notification(
        self,
        notification: NotificationEvent,
        on_event: Callable[[MonitorEvent], None],
    ) -> None:
        await sleep(self.notification_timeout)
        on_event(NotificationExpiredEvent(notification))

    @staticmethod
    def _report_drop(
        on_event: Callable[[MonitorEvent], None], result: Invalid
    ) -> None:
        if result.message_id is not None:
            message = (
                f"Dropped frame of message id {result.message_id}: "
                f"{result.reason.value}"
            )
        else:
            message = f"Dropped frame: {result.reason.value}"
        on_event(LogEvent(logging.DEBUG, message))


T = TypeVar("T", bound="MonitorTaskGroup")


@dataclass
class _PortTask:
    """Bookkeeping of a single port watched by a MonitorTaskGroup_."""

    dispatcher: MessageDispatcher
    cancel_scope: CancelScope = field(default_factory=CancelScope)


class MonitorTaskGroup:
    """A task group that is responsible for watching multiple ports in
    parallel, with configurable retry counts, in a way that the tasks are
    shielded from errors in other tasks.
    """

    _monitor: Monitor
    """The monitor that owns this task group."""

    _on_event: MonitorEventHandler
    """Callable that will be called with port names and monitor events. This
    callback can be used to update an attached UI.
    """

    _ports: Dict[str, _PortTask]
    """Mapping from the names of the ports being watched to their tasks."""

    _retries: int
    """Number of times a port is re-opened after an error before the task
    group gives up on it.
    """

    _retry_delay: float
    """Number of seconds to wait before re-opening a port after an error."""

    _task_group: TaskGroup
    """The anyio task group that runs the tasks watching the ports."""

    def __init__(
        self,
        monitor: Monitor,
        *,
        on_event: MonitorEventHandler,
        retries: int = 0,
        retry_delay: float = 1,
    ):
        """Constructor."""
        self._monitor = monitor
        self._on_event = on_event
        self._ports = {}
        self._retries = retries
        self._retry_delay = retry_delay
        self._task_group = create_task_group()

    async def __aenter__(self: T) -> T:
        await self._task_group.__aenter__()
        return self

    async def __aexit__(self, *args: Any) -> Optional[bool]:
        return await self._task_group.__aexit__(*args)

    def handle_port_event(self, event: PortEvent, *, notify: bool = True) -> None:
        """Starts or stops watching a port, depending on whether the port was
        attached or detached.

        Parameters:
            event: the event reported by a scanner
            notify: whether to post a notification about the event
        """
        if event.attached:
            if notify:
                self._notify(
                    "Serial Port Connected",
                    f"Serial Port {event.port} was connected.",
                )
            self.start_watching(event.port)
        else:
            if notify:
                self._notify(
                    "Serial Port Disconnected",
                    f"Serial Port {event.port} was disconnected.",
                )
            self.stop_watching(event.port)

    def is_watching(self, port: str) -> bool:
        """Returns whether the task group is watching the given port."""
        return port in self._ports

    def start_watching(self, port: str) -> None:
        """Starts watching the given port unless it is being watched already."""
        if port in self._ports:
            return

        on_event = partial(self._on_event, port)
        task = _PortTask(self._monitor.create_dispatcher(on_event))
        self._ports[port] = task
        self._task_group.start_soon(self._run_watch_in_protected_context, port, task)

    def stop_watching(self, port: str) -> None:
        """Stops watching the given port, assuming that it was removed from
        the system.
        """
        task = self._ports.pop(port, None)
        if task is not None:
            task.cancel_scope.cancel()
            self._on_event(port, PortLifecycleEvent(type="removed"))

    def _notify(self, title: str, text: str) -> None:
        self._monitor.post_notification(
            title, text, on_event=partial(self._on_event, "")
        )

    async def _run_watch_in_protected_context(self, port: str, task: _PortTask):
        on_event = partial(self._on_event, port)
        attempt = 0
        with task.cancel_scope:
            try:
                while attempt <= self._retries:
                    try:
                        await self._monitor.watch(
                            port, on_event=on_event, dispatcher=task.dispatcher
                        )
                    except Exception as ex:
                        if isinstance(ex, OSError):
                            message = f"Port failed: {_describe_error(ex)}"
                        elif isinstance(ex, RuntimeError):
                            message = f"Port failed: {ex}"
                        else:
                            message = f"Port failed: {ex!r}"

                        if attempt < self._retries:
                            on_event(
                                LogEvent(logging.WARNING, f"{message}, retrying...")
                            )
                            await sleep(self._retry_delay)
                        else:
                            on_event(LogEvent(logging.ERROR, message))
                        attempt += 1
                    else:
                        break
            finally:
                if self._ports.get(port) is task:
                    del self._ports[port]


def _describe_error(ex: OSError) -> str:
    return ex.strerror or str(ex) or ex.__class__.__name__


def _find_os_error(ex: BaseException) -> Optional[OSError]:
    if isinstance(ex, OSError):
        return ex
    if isinstance(ex, BaseExceptionGroup):
        for inner in ex.exceptions:
            error = _find_os_error(inner)
            if error is not None:
                return error
    return None
