from math import inf, nan
from pytest import mark, raises
from struct import pack, unpack

from mavlink_monitor.errors import PayloadDecodeError
from mavlink_monitor.messages import (
    DEFAULT_REGISTRY,
    FieldSpec,
    FieldType,
    MessageDescriptor,
    MessageRegistry,
    format_float32,
)


def float32(value: float) -> float:
    return unpack("<f", pack("<f", value))[0]


def test_heartbeat():
    payload = pack("<IBBBBB", 0, 2, 12, 0, 4, 3)
    assert DEFAULT_REGISTRY.describe(0, payload) == "HEARTBEAT mavlink_version: 3"


def test_sys_status():
    payload = pack("<IIIHHhHHHHHHb", 0, 0, 0, 500, 12000, -1, 25, 0, 0, 0, 0, 0, 80)
    assert len(payload) == 31
    assert DEFAULT_REGISTRY.describe(1, payload) == "SYS_STATUS comms drop rate: 25%"


def test_attitude():
    payload = pack("<Iffffff", 1000, 0.1, 0.2, 0.3, 0, 0, 0)
    assert (
        DEFAULT_REGISTRY.describe(30, payload)
        == "ATTITUDE roll: 0.1 pitch: 0.2 yaw: 0.3"
    )


def test_vfr_hud():
    payload = pack("<ffffhH", 12.5, 12.0, 100.0, 0.5, 270, 50)
    assert DEFAULT_REGISTRY.describe(74, payload) == "VFR_HUD heading: 270 degrees"


def test_highres_imu():
    floats = [0.0] * 13
    floats[9] = 1013.25
    payload = pack("<Q13fH", 123456789, *floats, 0xFFFF)
    assert len(payload) == 62
    assert (
        DEFAULT_REGISTRY.describe(105, payload)
        == "HIGHRES_IMU Pressure: 1013.25 millibar"
    )


def test_battery_status():
    payload = pack("<iih10HhBBBb", 1234, 5678, 250, *([3700] * 10), 1500, 0, 0, 1, 75)
    assert len(payload) == 36
    assert (
        DEFAULT_REGISTRY.describe(147, payload)
        == "BATTERY_STATUS current consumed: 1234 mAh"
    )

    payload = pack("<iih10HhBBBb", -1, -1, 0, *([0xFFFF] * 10), -1, 0, 0, 0, -1)
    assert (
        DEFAULT_REGISTRY.describe(147, payload)
        == "BATTERY_STATUS current consumed: -1 mAh"
    )


@mark.parametrize(
    "message_id,name",
    [
        (32, "LOCAL_POSITION_NED"),
        (33, "GLOBAL_POSITION_INT"),
        (87, "POSITION_TARGET_GLOBAL_INT"),
    ],
)
def test_messages_described_by_name_only(message_id: int, name: str):
    descriptor = DEFAULT_REGISTRY.lookup(message_id)
    assert descriptor is not None
    payload = bytes(descriptor.payload_length)
    assert DEFAULT_REGISTRY.describe(message_id, payload) == name


@mark.parametrize(
    "message_id,length,crc_extra",
    [
        (0, 9, 50),
        (1, 31, 124),
        (30, 28, 39),
        (32, 28, 185),
        (33, 28, 104),
        (74, 20, 20),
        (87, 51, 150),
        (105, 62, 93),
        (147, 36, 154),
    ],
)
def test_descriptor_table(message_id: int, length: int, crc_extra: int):
    descriptor = DEFAULT_REGISTRY.lookup(message_id)
    assert descriptor is not None
    assert descriptor.id == message_id
    assert descriptor.payload_length == length
    assert descriptor.crc_extra == crc_extra
    assert DEFAULT_REGISTRY.crc_extra_for(message_id) == crc_extra
    assert message_id in DEFAULT_REGISTRY


def test_unknown_message():
    assert 42 not in DEFAULT_REGISTRY
    assert DEFAULT_REGISTRY.lookup(42) is None
    assert DEFAULT_REGISTRY.crc_extra_for(42) == 0
    assert DEFAULT_REGISTRY.describe(42, b"spam") == "OTHER Message id 42 received"
    assert DEFAULT_REGISTRY.describe(255, b"") == "OTHER Message id 255 received"


def test_short_payload_falls_back_to_generic_description():
    assert DEFAULT_REGISTRY.describe(0, b"\x00") == "OTHER Message id 0 received"

    descriptor = DEFAULT_REGISTRY.lookup(0)
    assert descriptor is not None
    with raises(PayloadDecodeError):
        descriptor.decode(b"\x00")


def test_longer_payload_is_accepted():
    payload = pack("<IBBBBB", 0, 2, 12, 0, 4, 3) + b"\x00\x00"
    assert DEFAULT_REGISTRY.describe(0, payload) == "HEARTBEAT mavlink_version: 3"


def test_describe_is_idempotent():
    payload = pack("<Iffffff", 1000, 0.1, 0.2, 0.3, 0, 0, 0)
    first = DEFAULT_REGISTRY.describe(30, payload)
    assert DEFAULT_REGISTRY.describe(30, payload) == first


def test_decoded_values():
    descriptor = DEFAULT_REGISTRY.lookup(30)
    assert descriptor is not None

    message = descriptor.decode(pack("<Iffffff", 1000, 0.5, -0.25, 3.0, 0, 0, 0))
    assert message["time_boot_ms"] == 1000
    assert message["roll"] == 0.5
    assert message["pitch"] == -0.25
    assert message["yaw"] == 3.0
    assert message.format() == "ATTITUDE roll: 0.5 pitch: -0.25 yaw: 3.0"
    assert descriptor.field_names[:4] == ("time_boot_ms", "roll", "pitch", "yaw")


def test_registry_is_iterable():
    names = {descriptor.name for descriptor in DEFAULT_REGISTRY}
    assert len(DEFAULT_REGISTRY) == 9
    assert "HEARTBEAT" in names
    assert "BATTERY_STATUS" in names


def test_duplicate_ids_are_rejected():
    descriptor = DEFAULT_REGISTRY.lookup(0)
    assert descriptor is not None
    with raises(ValueError, match="duplicate"):
        MessageRegistry([descriptor, descriptor])


def test_custom_descriptor():
    descriptor = MessageDescriptor(
        200,
        "CUSTOM",
        77,
        (
            FieldSpec("counter", FieldType.UINT16_T, 0),
            FieldSpec("name", FieldType.CHAR, 2, 4),
        ),
        "CUSTOM {name} #{counter}",
    )
    registry = MessageRegistry([descriptor])

    assert descriptor.payload_length == 6
    assert registry.crc_extra_for(200) == 77
    assert registry.describe(200, b"\x05\x00ab\x00c") == "CUSTOM ab #5"


def test_field_spec_arrays():
    spec = FieldSpec("values", FieldType.UINT16_T, 1, 3)
    assert spec.size == 6
    assert spec.end == 7

    value = spec.read(b"\xff" + pack("<HHH", 1, 2, 3))
    assert value == (1, 2, 3)
    assert spec.render(value) == "[1, 2, 3]"

    with raises(PayloadDecodeError):
        spec.read(b"\xff\x01\x00")


def test_field_type_sizes():
    assert FieldType.CHAR.size == 1
    assert FieldType.INT16_T.size == 2
    assert FieldType.FLOAT.size == 4
    assert FieldType.UINT64_T.size == 8
    assert FieldType.DOUBLE.size == 8


@mark.parametrize(
    "value,expected",
    [
        (0.1, "0.1"),
        (0.2, "0.2"),
        (1.0, "1.0"),
        (100.0, "100.0"),
        (-2.5, "-2.5"),
        (1013.25, "1013.25"),
        (1e-10, "1e-10"),
        (inf, "inf"),
        (-inf, "-inf"),
        (nan, "nan"),
    ],
)
def test_format_float32(value: float, expected: str):
    assert format_float32(float32(value)) == expected
