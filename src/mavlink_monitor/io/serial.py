"""Serial port transport layer for the MAVLink monitor.

Telemetry radios and flight controllers connected over USB are read through
``pyserial``. Blocking reads and writes happen in worker threads managed by
``anyio`` so the rest of the monitor can stay asynchronous.
"""

from anyio import (
    create_memory_object_stream,
    create_task_group,
    from_thread,
    move_on_after,
    to_thread,
    BusyResourceError,
    CancelScope,
    ClosedResourceError,
    EndOfStream,
    Event,
)
from anyio.abc import ByteStream, TaskGroup
from anyio.streams.buffered import BufferedByteReceiveStream
from anyio.streams.memory import MemoryObjectSendStream
from functools import partial
from serial import PARITY_NONE, STOPBITS_ONE, Serial, serial_for_url
from serial.serialutil import PortNotOpenError, SerialException
from typing import Any, Callable, Coroutine, Dict, Optional, TypeVar

from .base import Transport

__all__ = (
    "DEFAULT_BAUDRATE",
    "DEFAULT_LINK_SETTINGS",
    "SerialPortByteStream",
    "SerialPortTransport",
)

T = TypeVar("T", bound="SerialPortByteStream")
T2 = TypeVar("T2", bound="SerialPortTransport")

DEFAULT_BAUDRATE = 57600
"""Default baud rate of MAVLink telemetry links."""

DEFAULT_LINK_SETTINGS: Dict[str, Any] = {
    "baudrate": DEFAULT_BAUDRATE,
    "parity": PARITY_NONE,
    "stopbits": STOPBITS_ONE,
}
"""Default settings of the serial port: 57600 baud, no parity, one stop bit."""


def _open_port(url: str, **kwds: Any) -> Serial:
    """Creates a ``pyserial`` port from a URL without opening it, using the
    default link settings for anything not given explicitly.
    """
    settings = {**DEFAULT_LINK_SETTINGS, **kwds}
    settings["do_not_open"] = True
    return serial_for_url(url, **settings)


class SerialPortByteStream(ByteStream):
    """anyio-compatible ByteStream_ object that works with an underlying
    serial port.
    """

    max_read_size: int
    """Maximum number of bytes that we attempt to read from the port in a
    single chunk.
    """

    _port: Serial
    """The ``pyserial`` serial port that this object wraps."""

    _reader_stream: Optional[BufferedByteReceiveStream] = None
    """A receive stream that will yield the bytes received from the serial
    port. ``None`` if the byte stream is not open.
    """

    _reader_thread_queue: Optional[MemoryObjectSendStream] = None
    """The sending endpoint of the queue used by the reader thread. Closing it
    tells the thread that nobody is interested in the data from the port any
    more.
    """

    _task_group: Optional[TaskGroup] = None
    """The ``anyio`` task group that encapsulates the reader and writer
    worker task; ``None`` if the byte stream is not open.
    """

    _writer_done: Optional[Event] = None
    """Event that the writer thread will set when it is about to terminate."""

    _writer_thread_queue: Optional[MemoryObjectSendStream] = None
    """The sending endpoint of the queue used by the writer thread. Closing it
    tells the thread that no more data will be written to the port.
    """

    @classmethod
    def from_url(cls, url: str, *, max_read_size: int = 1024, **kwds: Any):
        """Creates a serial port from the given ``pyserial`` URL specification,
        using the default MAVLink link settings unless overridden in the
        keyword arguments.

        See https://pyserial.readthedocs.io/en/latest/url_handlers.html for
        more details.
        """
        return cls(_open_port(url, **kwds), max_read_size=max_read_size)

    def __init__(self, port: Serial, *, max_read_size: int = 1024) -> None:
        """Constructor.

        Parameters:
            port: the ``pyserial`` port to wrap
            max_read_size: maximum number of bytes that we attempt to read in
                a single chunk
        """
        self._port = port
        self.max_read_size = max_read_size

    async def __aenter__(self: T) -> T:
        if self._task_group is not None:
            raise BusyResourceError("opening serial port")

        if not self._port.is_open:
            await to_thread.run_sync(self._port.open)

        task_group = create_task_group()
        await task_group.__aenter__()

        # Chunks read from the port flow through a rendezvous stream so the
        # reader thread blocks until the monitor consumes them
        reader_tx, reader_rx = create_memory_object_stream[bytes](0)
        self._start_worker(task_group, self._read_worker, reader_tx.send)
        reader_stream = BufferedByteReceiveStream(reader_rx)

        writer_tx, writer_rx = create_memory_object_stream[bytes](0)
        writer_done = Event()
        self._start_worker(
            task_group, self._write_worker, writer_rx.receive, writer_done.set
        )

        self._task_group = task_group
        self._reader_stream = reader_stream
        self._reader_thread_queue = reader_tx
        self._writer_done = writer_done
        self._writer_thread_queue = writer_tx

        return self

    async def __aexit__(self, *args: Any) -> None:
        await super().__aexit__(*args)  # calls aclose()
        assert self._task_group is not None
        try:
            await self._task_group.__aexit__(*args)
        finally:
            self._task_group = None

    @staticmethod
    def _start_worker(task_group: TaskGroup, func: Callable[..., None], *args: Any):
        """Runs the given blocking function in a worker thread of the task
        group. The thread is abandoned when the task group is cancelled.
        """
        task_group.start_soon(
            partial(to_thread.run_sync, func, *args, abandon_on_cancel=True)
        )

    def _read_worker(
        self, sender: Callable[[bytes], Coroutine[None, None, None]]
    ) -> None:
        """Reads chunks from the port in a worker thread and forwards them to
        the receiving side of the stream until the port is closed.
        """
        port = self._port
        try:
            while True:
                # Blocks for a single byte when nothing is pending
                data = port.read(min(port.in_waiting, self.max_read_size) or 1)
                if data:
                    from_thread.run(sender, data)
        except SerialException:
            # An exception while closing is expected; anything else means that
            # the device went away and the reader of the stream must know
            if self._reader_thread_queue is not None:
                raise
        except (PortNotOpenError, ClosedResourceError):
            pass

    def _write_worker(
        self,
        receiver: Callable[[], Coroutine[None, None, bytes]],
        on_exit: Callable[[], None],
    ) -> None:
        """Writes the chunks queued by `send()` to the port in a worker thread
        until the sending side of the queue is closed.
        """
        port = self._port
        try:
            while True:
                data = from_thread.run(receiver)
                port.write(data)
        except (PortNotOpenError, EndOfStream):
            pass
        finally:
            from_thread.run_sync(on_exit)

    async def aclose(self) -> None:
        """Closes the serial port."""
        reader_queue, self._reader_thread_queue = self._reader_thread_queue, None
        writer_queue, self._writer_thread_queue = self._writer_thread_queue, None
        writer_done, self._writer_done = self._writer_done, None

        try:
            # Close the producers so the worker threads unblock and terminate
            with CancelScope(shield=True):
                if writer_queue:
                    await writer_queue.aclose()

                # Let the writer flush what it has, e.g. the startup command
                if writer_done:
                    with move_on_after(3):
                        await writer_done.wait()

                if reader_queue:
                    await reader_queue.aclose()

                if self._port.is_open:
                    await to_thread.run_sync(self._port.close)
        finally:
            # Invalidated only now so pending data can still be read until the
            # port is closed
            self._reader_stream = None

    async def receive(self, max_bytes: int = 65536) -> bytes:
        """Reads at most the given number of bytes from the serial port.

        Returns:
            the bytes that were read
        """
        if self._reader_stream is None:
            raise ClosedResourceError()
        return await self._reader_stream.receive(max_bytes=max_bytes)

    async def send(self, data: bytes) -> None:
        """Sends the given bytes to the serial port."""
        if self._writer_thread_queue is None:
            raise ClosedResourceError()
        await self._writer_thread_queue.send(data)

    async def send_eof(self) -> None:
        """Not supported; a serial link has no notion of half-closing."""
        raise NotImplementedError("Serial ports cannot send EOF")

    @property
    def baudrate(self) -> int:
        """The baud rate of the serial port."""
        return self._port.baudrate  # type: ignore

    @property
    def wrapped_port(self) -> Serial:
        """Returns the raw, wrapped ``pyserial`` port instance."""
        return self._port


class SerialPortTransport(Transport):
    """Serial port transport object that reads bytes from and writes bytes to
    a serial port.
    """

    _stream: SerialPortByteStream
    """A bidirectional byte stream that is connected to the serial port."""

    @classmethod
    def from_url(cls, url: str, *, max_read_size: int = 1024, **kwds: Any):
        """Creates a serial port transport from the given ``pyserial`` URL
        specification, using the default MAVLink link settings unless
        overridden in the keyword arguments.

        See https://pyserial.readthedocs.io/en/latest/url_handlers.html for more
        details.
        """
        return cls(_open_port(url, **kwds), max_read_size=max_read_size)

    def __init__(self, port: Serial, *, max_read_size: int = 1024) -> None:
        self._stream = SerialPortByteStream(port, max_read_size=max_read_size)

    async def __aenter__(self: T2) -> T2:
        await self._stream.__aenter__()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self._stream.__aexit__(*args)

    async def aclose(self) -> None:
        return await self._stream.aclose()

    async def receive(self) -> bytes:
        return await self._stream.receive()

    async def send(self, data: bytes) -> None:
        return await self._stream.send(data)

    @property
    def stream(self) -> SerialPortByteStream:
        """The byte stream connected to the serial port."""
        return self._stream
