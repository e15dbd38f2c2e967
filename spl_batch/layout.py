"""Fixed-width little-endian primitives for instruction payloads.

Payloads are written through a :class:`PayloadCursor` that owns its buffer for
the duration of one encoding. The cursor tracks the write offset itself, so
encoders never thread a running offset by hand, and it refuses to hand back a
buffer that was not filled exactly.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from solders.pubkey import Pubkey

from .errors import DomainViolationError, InstructionDecodeError, SchemaViolationError

U8_WIDTH = 1
U32_WIDTH = 4
U64_WIDTH = 8
PUBKEY_WIDTH = 32

U64_MAX = 2**64 - 1


def check_unsigned(value: int, width: int, field: str) -> int:
    """Return ``value`` when it fits in ``width`` unsigned bytes."""

    if isinstance(value, bool) or not isinstance(value, int):
        raise DomainViolationError(
            f"{field} must be an integer, got {type(value).__name__}"
        )
    upper = 2 ** (8 * width) - 1
    if value < 0 or value > upper:
        raise DomainViolationError(f"{field}={value} is outside the range 0..{upper}")
    return value


def check_pubkey(value: Pubkey | None, field: str) -> Pubkey:
    """Return ``value`` when it is a 32-byte public key identity."""

    if value is None:
        raise DomainViolationError(f"{field} is required")
    if not isinstance(value, Pubkey):
        raise DomainViolationError(
            f"{field} must be a Pubkey, got {type(value).__name__}"
        )
    return value


class PayloadCursor:
    """Write-once cursor over a buffer allocated at its final length."""

    def __init__(self, length: int) -> None:
        if length <= 0:
            raise SchemaViolationError(f"payload length must be positive, got {length}")
        self._buffer = bytearray(length)
        self._offset = 0
        self._closed = False

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def length(self) -> int:
        return len(self._buffer)

    def _reserve(self, width: int) -> int:
        if self._closed:
            raise SchemaViolationError("payload cursor used after its buffer was released")
        start = self._offset
        if start + width > len(self._buffer):
            raise SchemaViolationError(
                f"write of {width} bytes at offset {start} overflows {len(self._buffer)}-byte payload"
            )
        self._offset = start + width
        return start

    def _write_int(self, value: int, width: int, field: str) -> int:
        check_unsigned(value, width, field)
        start = self._reserve(width)
        self._buffer[start : start + width] = value.to_bytes(width, "little")
        return self._offset

    def write_u8(self, value: int, field: str = "u8") -> int:
        return self._write_int(value, U8_WIDTH, field)

    def write_u32(self, value: int, field: str = "u32") -> int:
        return self._write_int(value, U32_WIDTH, field)

    def write_u64(self, value: int, field: str = "u64") -> int:
        return self._write_int(value, U64_WIDTH, field)

    def write_pubkey(self, value: Pubkey, field: str = "pubkey") -> int:
        raw = bytes(check_pubkey(value, field))
        start = self._reserve(PUBKEY_WIDTH)
        self._buffer[start : start + PUBKEY_WIDTH] = raw
        return self._offset

    def finish(self) -> bytes:
        """Release the buffer as immutable bytes once every byte is written."""

        if self._closed:
            raise SchemaViolationError("payload cursor already finished")
        if self._offset != len(self._buffer):
            raise SchemaViolationError(
                f"payload filled {self._offset} of {len(self._buffer)} bytes"
            )
        self._closed = True
        payload = bytes(self._buffer)
        self._buffer = bytearray()
        return payload


@contextmanager
def encode_payload(length: int) -> Iterator[PayloadCursor]:
    """Yield a cursor that must be filled and finished inside the block."""

    cursor = PayloadCursor(length)
    yield cursor
    if not cursor._closed:
        raise SchemaViolationError(
            f"payload cursor left unfinished at offset {cursor.offset} of {cursor.length}"
        )


class PayloadReader:
    """Sequential little-endian reader used to decode payloads."""

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._offset = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    def _take(self, width: int, field: str) -> bytes:
        if self.remaining < width:
            raise InstructionDecodeError(
                f"payload too short for {field}: need {width} bytes at offset {self._offset}, "
                f"have {self.remaining}"
            )
        start = self._offset
        self._offset += width
        return self._data[start : start + width]

    def read_u8(self, field: str = "u8") -> int:
        return self._take(U8_WIDTH, field)[0]

    def read_u32(self, field: str = "u32") -> int:
        return int.from_bytes(self._take(U32_WIDTH, field), "little")

    def read_u64(self, field: str = "u64") -> int:
        return int.from_bytes(self._take(U64_WIDTH, field), "little")

    def read_pubkey(self, field: str = "pubkey") -> Pubkey:
        return Pubkey.from_bytes(self._take(PUBKEY_WIDTH, field))

    def expect_end(self) -> None:
        if self.remaining:
            raise InstructionDecodeError(f"{self.remaining} unexpected trailing payload bytes")
