"""Manual instruction encoding for Anchor-style programs.

Layout: discriminator (8 bytes) || arguments, where the discriminator is the
first 8 bytes of sha256("global:<instruction_name>").

Argument rules:
    u8                 1 byte
    u32 / u64          fixed-width little-endian
    fixed byte arrays  verbatim, no length prefix
    bytes / strings    u32 LE length prefix, then raw (UTF-8) bytes
    options            1-byte presence flag, then the value if present

This table is the contract with the remote program. It is kept by hand
because the generated client mis-sizes some account layouts; do not replace
it with an IDL-derived layout without re-checking a known-good transaction
byte for byte.
"""

from __future__ import annotations

import hashlib
import struct
from typing import Callable, TypeVar

T = TypeVar("T")

DISCRIMINATOR_LEN = 8

_U32_MAX = 2**32 - 1
_U64_MAX = 2**64 - 1


class DecodeError(ValueError):
    """Data is truncated or does not match the expected layout."""


def discriminator(name: str, namespace: str = "global") -> bytes:
    return hashlib.sha256(f"{namespace}:{name}".encode("utf-8")).digest()[:DISCRIMINATOR_LEN]


# ── Encoders ───────────────────────────────────────────


def u8(value: int) -> bytes:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"u8 out of range: {value}")
    return bytes([value])


def u32(value: int) -> bytes:
    if not 0 <= value <= _U32_MAX:
        raise ValueError(f"u32 out of range: {value}")
    return struct.pack("<I", value)


def u64(value: int) -> bytes:
    if not 0 <= value <= _U64_MAX:
        raise ValueError(f"u64 out of range: {value}")
    return struct.pack("<Q", value)


def boolean(value: bool) -> bytes:
    return b"\x01" if value else b"\x00"


def fixed_bytes(value: bytes, length: int) -> bytes:
    value = bytes(value)
    if len(value) != length:
        raise ValueError(f"expected {length} bytes, got {len(value)}")
    return value


def bytes_field(value: bytes) -> bytes:
    value = bytes(value)
    return u32(len(value)) + value


def string(value: str) -> bytes:
    return bytes_field(value.encode("utf-8"))


def option(value: T | None, encoder: Callable[[T], bytes]) -> bytes:
    if value is None:
        return b"\x00"
    return b"\x01" + encoder(value)


def encode_instruction(name: str, *fields: bytes) -> bytes:
    """Build instruction data: discriminator of `name` followed by pre-encoded fields."""
    return discriminator(name) + b"".join(fields)


# ── Reference decoder ──────────────────────────────────


class InstructionReader:
    """Sequential reader mirroring the encoders above.

    Also used for account data, which follows the same rules.
    """

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._offset = 0

    @property
    def offset(self) -> int:
        return self._offset

    def _take(self, n: int) -> bytes:
        end = self._offset + n
        if end > len(self._data):
            raise DecodeError(
                f"need {n} bytes at offset {self._offset}, only {len(self._data) - self._offset} left"
            )
        chunk = self._data[self._offset:end]
        self._offset = end
        return chunk

    def expect_discriminator(self, name: str, namespace: str = "global") -> None:
        got = self._take(DISCRIMINATOR_LEN)
        if got != discriminator(name, namespace):
            raise DecodeError(f"discriminator mismatch for {namespace}:{name}")

    def u8(self) -> int:
        return self._take(1)[0]

    def u32(self) -> int:
        return struct.unpack("<I", self._take(4))[0]

    def u64(self) -> int:
        return struct.unpack("<Q", self._take(8))[0]

    def boolean(self) -> bool:
        flag = self.u8()
        if flag not in (0, 1):
            raise DecodeError(f"invalid bool byte {flag}")
        return flag == 1

    def fixed_bytes(self, length: int) -> bytes:
        return self._take(length)

    def pubkey(self) -> bytes:
        return self._take(32)

    def bytes_field(self) -> bytes:
        return self._take(self.u32())

    def string(self) -> str:
        try:
            return self.bytes_field().decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"invalid UTF-8 string: {exc}") from exc

    def option(self, read: Callable[[], T]) -> T | None:
        flag = self.u8()
        if flag == 0:
            return None
        if flag != 1:
            raise DecodeError(f"invalid option flag {flag}")
        return read()

    def remaining(self) -> bytes:
        return self._take(len(self._data) - self._offset)

    def at_end(self) -> bool:
        return self._offset == len(self._data)
