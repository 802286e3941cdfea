from anyio import BusyResourceError, ClosedResourceError
from pytest import fixture, raises
from random import randint
from serial import PARITY_NONE, STOPBITS_ONE

from mavlink_monitor.dispatcher import MessageDispatcher
from mavlink_monitor.io import create_transport
from mavlink_monitor.io.serial import (
    DEFAULT_BAUDRATE,
    SerialPortByteStream,
    SerialPortTransport,
)


@fixture
def loopback():
    return SerialPortByteStream.from_url("loop://")


@fixture
def transport():
    return SerialPortTransport.from_url("loop://")


async def receive_at_least(stream: SerialPortByteStream, size: int) -> bytes:
    data = b""
    while len(data) < size:
        data += await stream.receive()
    return data


async def test_send_receive(loopback: SerialPortByteStream):
    async with loopback:
        await loopback.send(b"spam ham bacon eggs")
        assert await receive_at_least(loopback, 19) == b"spam ham bacon eggs"

        await loopback.send(b" and spam")
        assert await receive_at_least(loopback, 9) == b" and spam"


def test_default_link_settings(loopback: SerialPortByteStream):
    port = loopback.wrapped_port
    assert loopback.baudrate == DEFAULT_BAUDRATE == 57600
    assert port.parity == PARITY_NONE
    assert port.stopbits == STOPBITS_ONE
    assert not port.is_open


def test_link_settings_override():
    transport = create_transport("loop://", baudrate=115200)
    assert isinstance(transport, SerialPortTransport)
    assert transport.stream.baudrate == 115200
    assert transport.stream.wrapped_port.parity == PARITY_NONE


async def test_send_receive_when_closed(loopback: SerialPortByteStream):
    with raises(ClosedResourceError):
        await loopback.send(b"test")
    with raises(ClosedResourceError):
        await loopback.receive()


async def test_open_twice(loopback: SerialPortByteStream):
    async with loopback:
        with raises(BusyResourceError):
            async with loopback:
                pass


async def test_open_before_entering_context(loopback: SerialPortByteStream):
    loopback.wrapped_port.open()
    async with loopback:
        pass


async def test_send_eof_is_not_supported(loopback: SerialPortByteStream):
    with raises(NotImplementedError):
        await loopback.send_eof()


async def test_frames_through_serial_port(
    nursery, transport: SerialPortTransport, heartbeat_frame: bytes
):
    num_frames = 100
    descriptions: list[str] = []

    async def producer():
        data = heartbeat_frame * num_frames
        while data:
            to_send_now = randint(1, 40)
            chunk, data = data[:to_send_now], data[to_send_now:]
            await transport.send(chunk)

    async with transport:
        nursery.start_soon(producer)

        dispatcher = MessageDispatcher()
        while len(descriptions) < num_frames:
            descriptions.extend(dispatcher.process(await transport.receive()))

    assert descriptions == ["HEARTBEAT mavlink_version: 3\n"] * num_frames
