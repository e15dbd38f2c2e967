from __future__ import annotations

import pytest
from solders.keypair import Keypair

from spl_batch.errors import DomainViolationError, InstructionDecodeError, SchemaViolationError
from spl_batch.layout import PayloadCursor, PayloadReader, U64_MAX, check_unsigned, encode_payload


def test_cursor_writes_little_endian_and_tracks_offset() -> None:
    cursor = PayloadCursor(13)
    assert cursor.write_u8(7) == 1
    assert cursor.write_u32(1) == 5
    assert cursor.write_u64(0x0102030405060708) == 13

    data = cursor.finish()

    assert data == bytes([7, 1, 0, 0, 0, 8, 7, 6, 5, 4, 3, 2, 1])


def test_cursor_refuses_overflow() -> None:
    cursor = PayloadCursor(4)
    cursor.write_u8(0)
    with pytest.raises(SchemaViolationError):
        cursor.write_u32(0)


def test_cursor_refuses_partial_fill() -> None:
    cursor = PayloadCursor(9)
    cursor.write_u8(3)
    with pytest.raises(SchemaViolationError):
        cursor.finish()


def test_cursor_is_unusable_after_finish() -> None:
    cursor = PayloadCursor(1)
    cursor.write_u8(1)
    cursor.finish()
    with pytest.raises(SchemaViolationError):
        cursor.write_u8(2)
    with pytest.raises(SchemaViolationError):
        cursor.finish()


def test_encode_payload_requires_finish_inside_block() -> None:
    with pytest.raises(SchemaViolationError):
        with encode_payload(2) as cursor:
            cursor.write_u8(1)


def test_pubkey_written_verbatim() -> None:
    pubkey = Keypair().pubkey()
    with encode_payload(32) as cursor:
        cursor.write_pubkey(pubkey)
        data = cursor.finish()
    assert data == bytes(pubkey)


@pytest.mark.parametrize("value", [-1, U64_MAX + 1, True, 1.5, "3"])
def test_check_unsigned_rejects_out_of_domain(value) -> None:
    with pytest.raises(DomainViolationError):
        check_unsigned(value, 8, "amount")


def test_check_unsigned_accepts_bounds() -> None:
    assert check_unsigned(0, 8, "amount") == 0
    assert check_unsigned(U64_MAX, 8, "amount") == U64_MAX
    assert check_unsigned(255, 1, "decimals") == 255


def test_reader_reports_short_and_trailing_data() -> None:
    reader = PayloadReader(b"\x01\x02")
    assert reader.read_u8() == 1
    with pytest.raises(InstructionDecodeError):
        reader.read_u64("amount")

    trailing = PayloadReader(b"\x01\x02")
    trailing.read_u8()
    with pytest.raises(InstructionDecodeError):
        trailing.expect_end()
