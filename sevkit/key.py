"""Symmetric keys for the SEV transport channel."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from typing import BinaryIO, Iterable, Union

__all__ = ["Key"]

_DIGEST_SIZE = hashlib.sha256().digest_size
_U32_LIMIT = 1 << 32

BytesLike = Union[bytes, bytearray, memoryview]


class Key:
    """A secret byte string that can be wiped when no longer needed."""

    __slots__ = ("_data",)

    def __init__(self, data: Union[BytesLike, Iterable[int]] = b""):
        self._data = bytearray(data)

    @classmethod
    def zeroed(cls, size: int) -> "Key":
        """A key of ``size`` zero bytes."""
        return cls(bytes(size))

    @classmethod
    def random(cls, size: int) -> "Key":
        """A key of ``size`` bytes from the system's secure random source."""
        return cls(secrets.token_bytes(size))

    def derive(self, size: int, ctx: BytesLike, label: str) -> "Key":
        """Derive a ``size``-byte key with the NIST 800-108 KDF in counter mode.

        The PRF is HMAC-SHA256 keyed with this key; counter and length are
        encoded as little-endian 32-bit integers.
        """
        if _DIGEST_SIZE * 8 >= _U32_LIMIT or size * 8 >= _U32_LIMIT or size < 0:
            raise ValueError(f"cannot derive a key of {size} bytes")
        length_bits = (size * 8).to_bytes(4, "little")
        blocks = -(-size // _DIGEST_SIZE)
        suffix = label.encode() + b"\0" + bytes(ctx) + length_bits
        out = bytearray()
        for counter in range(1, blocks + 1):
            out += hmac.new(
                bytes(self._data), counter.to_bytes(4, "little") + suffix, hashlib.sha256
            ).digest()
        derived = Key(out[:size])
        out[:] = bytes(len(out))
        return derived

    def mac(self, data: BytesLike) -> bytes:
        """The 32-byte HMAC-SHA256 of ``data`` under this key."""
        return hmac.new(bytes(self._data), bytes(data), hashlib.sha256).digest()

    def encode(self, writer: BinaryIO) -> None:
        """Write the raw key bytes to ``writer``."""
        writer.write(bytes(self._data))

    def wipe(self) -> None:
        """Overwrite the key material with zeros."""
        self._data[:] = bytes(len(self._data))

    def __enter__(self) -> "Key":
        return self

    def __exit__(self, *exc_info) -> None:
        self.wipe()

    def __bytes__(self) -> bytes:
        return bytes(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return bytes(self._data[index])
        return self._data[index]

    def __eq__(self, other) -> bool:
        if isinstance(other, Key):
            return hmac.compare_digest(bytes(self._data), bytes(other._data))
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Key(<{len(self._data)} bytes>)"