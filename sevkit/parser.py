"""Little-endian encoding of fixed-size values to and from byte streams."""

from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO, Protocol, Union

__all__ = [
    "InvalidDataError",
    "Scalar",
    "ByteArray",
    "parse_bytes",
    "skip_read",
    "write_bytes",
    "skip_write",
    "U8",
    "U16",
    "U32",
    "U64",
    "U128",
    "USIZE",
    "I8",
    "I16",
    "I32",
    "I64",
    "I128",
    "ISIZE",
]


class InvalidDataError(ValueError):
    """Raised when bytes read from a stream do not hold what was expected."""


class _Kind(Protocol):
    def to_bytes(self, value) -> bytes: ...

    def from_bytes(self, data: bytes): ...

    def default(self): ...


@dataclass(frozen=True)
class Scalar:
    """An integer of fixed width stored in little-endian order."""

    size: int
    signed: bool = False

    def to_bytes(self, value: int) -> bytes:
        """Encode ``value``; raises OverflowError if it does not fit."""
        return int(value).to_bytes(self.size, "little", signed=self.signed)

    def from_bytes(self, data: bytes) -> int:
        """Decode exactly ``size`` bytes into an integer."""
        data = bytes(data)
        if len(data) != self.size:
            raise ValueError(f"expected {self.size} bytes, got {len(data)}")
        return int.from_bytes(data, "little", signed=self.signed)

    def default(self) -> int:
        return 0


@dataclass(frozen=True)
class ByteArray:
    """A raw byte string of fixed length."""

    size: int

    def to_bytes(self, value: Union[bytes, bytearray, memoryview]) -> bytes:
        data = bytes(value)
        if len(data) != self.size:
            raise ValueError(f"expected {self.size} bytes, got {len(data)}")
        return data

    def from_bytes(self, data: Union[bytes, bytearray, memoryview]) -> bytes:
        return self.to_bytes(data)

    def default(self) -> bytes:
        return bytes(self.size)


U8 = Scalar(1)
U16 = Scalar(2)
U32 = Scalar(4)
U64 = Scalar(8)
U128 = Scalar(16)
USIZE = Scalar(8)
I8 = Scalar(1, signed=True)
I16 = Scalar(2, signed=True)
I32 = Scalar(4, signed=True)
I64 = Scalar(8, signed=True)
I128 = Scalar(16, signed=True)
ISIZE = Scalar(8, signed=True)


def _read_exact(reader: BinaryIO, count: int) -> bytes:
    buffer = bytearray()
    while len(buffer) < count:
        chunk = reader.read(count - len(buffer))
        if not chunk:
            raise EOFError(f"expected {count} bytes, stream ended after {len(buffer)}")
        buffer += chunk
    return bytes(buffer)


def parse_bytes(reader: BinaryIO, kind: _Kind):
    """Read one value of ``kind`` from ``reader``.

    Raises EOFError if the stream ends before the value is complete.
    """
    size = len(kind.to_bytes(kind.default()))
    return kind.from_bytes(_read_exact(reader, size))


def skip_read(reader: BinaryIO, count: int) -> BinaryIO:
    """Consume ``count`` bytes that must all be zero, and return ``reader``."""
    if count:
        skipped = _read_exact(reader, count)
        if any(skipped):
            raise InvalidDataError("Skipped bytes were expected to be zeroed.")
    return reader


def write_bytes(writer: BinaryIO, kind: _Kind, value) -> None:
    """Write ``value`` encoded as ``kind`` to ``writer``."""
    writer.write(kind.to_bytes(value))


def skip_write(writer: BinaryIO, count: int) -> BinaryIO:
    """Write ``count`` zero bytes and return ``writer``."""
    if count:
        writer.write(bytes(count))
    return writer