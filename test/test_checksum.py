from mavlink_monitor.checksum import X25CRC, extra, finalize, seed, update


def test_empty_input():
    assert X25CRC().crc == 0xFFFF
    assert finalize(seed()) == 0xFFFF


def test_check_value():
    # Standard check value of CRC-16/MCRF4XX
    assert X25CRC(b"123456789").crc == 0x6F91


def test_incremental_accumulation():
    crc = X25CRC(b"1234")
    crc.accumulate(b"56789")
    assert crc.crc == 0x6F91

    acc = seed()
    for byte in b"123456789":
        acc = update(acc, byte)
    assert finalize(acc) == 0x6F91


def test_accumulator_stays_16_bits():
    acc = seed()
    for byte in range(256):
        acc = update(acc, byte)
        assert 0 <= acc <= 0xFFFF


def test_crc_extra_is_folded_in_like_a_byte():
    header = bytes([9, 0, 1, 1, 0])
    payload = bytes(9)

    crc = X25CRC.of_frame(header, payload, 50).crc
    assert crc == X25CRC(header + payload + bytes([50])).crc
    assert crc == finalize(extra(X25CRC(header + payload).crc, 50))

    assert X25CRC.of_frame(header, payload).crc == X25CRC(header + payload).crc


def test_crc_extra_changes_result():
    header = bytes([0, 0, 1, 1, 200])
    assert X25CRC.of_frame(header, b"", 0).crc != X25CRC.of_frame(header, b"", 1).crc
