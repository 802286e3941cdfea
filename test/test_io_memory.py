from anyio import EndOfStream
from pytest import fixture, raises

from mavlink_monitor.io.memory import InMemoryTransport


@fixture
def transport() -> InMemoryTransport:
    return InMemoryTransport(buffer_size=4)


async def test_send_receive(transport: InMemoryTransport):
    peer = transport.peer
    assert peer.peer is transport

    async with transport:
        await transport.send(b"spam")
        await peer.send(b"ham")
        assert await peer.receive() == b"spam"
        assert await transport.receive() == b"ham"


async def test_send_eof(transport: InMemoryTransport):
    peer = transport.peer

    await peer.send(b"bacon")
    await peer.send_eof()

    assert await transport.receive() == b"bacon"
    with raises(EndOfStream):
        await transport.receive()

    # The other direction still works
    await transport.send(b"eggs")
    assert await peer.receive() == b"eggs"


async def test_receive_after_peer_closed(transport: InMemoryTransport):
    async with transport:
        await transport.send(b"spam")

    assert await transport.peer.receive() == b"spam"
    with raises(EndOfStream):
        await transport.peer.receive()
