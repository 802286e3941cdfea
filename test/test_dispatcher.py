from pytest import fixture

from mavlink_monitor.decoder import DecoderState, FrameDecoder, Invalid, InvalidReason
from mavlink_monitor.dispatcher import MessageDispatcher


@fixture
def dispatcher() -> MessageDispatcher:
    return MessageDispatcher()


def test_process_single_frame(dispatcher: MessageDispatcher, heartbeat_frame: bytes):
    assert list(dispatcher.process(heartbeat_frame)) == [
        "HEARTBEAT mavlink_version: 3\n"
    ]


def test_process_multiple_frames_in_order(
    dispatcher: MessageDispatcher,
    heartbeat_frame: bytes,
    attitude_frame: bytes,
    make_frame,
):
    data = heartbeat_frame + make_frame(42, b"spam") + attitude_frame
    assert list(dispatcher.process(data)) == [
        "HEARTBEAT mavlink_version: 3\n",
        "OTHER Message id 42 received\n",
        "ATTITUDE roll: 0.1 pitch: 0.2 yaw: 0.3\n",
    ]


def test_frame_split_across_calls(
    dispatcher: MessageDispatcher, heartbeat_frame: bytes
):
    assert list(dispatcher.process(heartbeat_frame[:5])) == []
    assert list(dispatcher.process(heartbeat_frame[5:12])) == []
    assert list(dispatcher.process(heartbeat_frame[12:])) == [
        "HEARTBEAT mavlink_version: 3\n"
    ]


def test_process_is_lazy(dispatcher: MessageDispatcher, heartbeat_frame: bytes):
    descriptions = dispatcher.process(heartbeat_frame)
    assert dispatcher.decoder.state is DecoderState.IDLE
    assert dispatcher.decoder.statistics.frames_received == 0

    assert next(descriptions) == "HEARTBEAT mavlink_version: 3\n"
    assert dispatcher.decoder.statistics.frames_received == 1


def test_processed_frames_are_not_replayed(
    dispatcher: MessageDispatcher, heartbeat_frame: bytes
):
    assert len(list(dispatcher.process(heartbeat_frame))) == 1
    assert list(dispatcher.process(b"")) == []
    assert list(dispatcher.process(b"\x00\x01")) == []


def test_dropped_frames_are_reported(heartbeat_frame: bytes):
    dropped: list[Invalid] = []
    dispatcher = MessageDispatcher(on_drop=dropped.append)

    corrupted = bytearray(heartbeat_frame)
    corrupted[-1] ^= 0x01

    assert list(dispatcher.process(bytes(corrupted) + heartbeat_frame)) == [
        "HEARTBEAT mavlink_version: 3\n"
    ]
    assert dropped == [Invalid(InvalidReason.CHECKSUM_MISMATCH, 0)]


def test_dropped_frames_are_silent_by_default(
    dispatcher: MessageDispatcher, heartbeat_frame: bytes
):
    corrupted = bytearray(heartbeat_frame)
    corrupted[7] ^= 0x01
    assert list(dispatcher.process(bytes(corrupted))) == []
    assert dispatcher.decoder.statistics.checksum_mismatches == 1


def test_process_frames(dispatcher: MessageDispatcher, attitude_frame: bytes):
    (frame,) = dispatcher.process_frames(attitude_frame)
    assert frame.message_id == 30
    assert frame.length == 28
    assert dispatcher.describe(frame) == "ATTITUDE roll: 0.1 pitch: 0.2 yaw: 0.3\n"


def test_channels_are_independent(heartbeat_frame: bytes, attitude_frame: bytes):
    first = MessageDispatcher()
    second = MessageDispatcher(FrameDecoder())

    assert list(first.process(heartbeat_frame[:10])) == []
    assert list(second.process(attitude_frame[:10])) == []
    assert list(first.process(heartbeat_frame[10:])) == [
        "HEARTBEAT mavlink_version: 3\n"
    ]
    assert list(second.process(attitude_frame[10:])) == [
        "ATTITUDE roll: 0.1 pitch: 0.2 yaw: 0.3\n"
    ]
