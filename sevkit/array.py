"""Fixed-size byte arrays with hex formatting."""

from __future__ import annotations

import functools
from typing import Iterable, Iterator, Union

__all__ = ["ArrayError", "Array"]


class ArrayError(ValueError):
    """Raised when data does not match the size of an array."""


@functools.total_ordering
class Array:
    """A mutable byte array whose length never changes."""

    __slots__ = ("_data",)

    def __init__(self, data: Union[bytes, bytearray, memoryview, Iterable[int]] = b""):
        self._data = bytearray(data)

    @classmethod
    def zeroed(cls, size: int) -> "Array":
        """An array of ``size`` zero bytes."""
        return cls(bytes(size))

    @classmethod
    def from_sequence(cls, data: Union[bytes, bytearray, Iterable[int]], size: int) -> "Array":
        """Build an array of ``size`` bytes, raising ArrayError on a length mismatch."""
        array = cls(data)
        if len(array) != size:
            raise ArrayError("Vector is the wrong size")
        return array

    def lower_hex(self) -> str:
        return "".join(f"{byte:02x}" for byte in self._data)

    def upper_hex(self) -> str:
        return "".join(f"{byte:02X}" for byte in self._data)

    def __str__(self) -> str:
        lines = (
            " ".join(f"{byte:02X}" for byte in self._data[start : start + 16])
            for start in range(0, len(self._data), 16)
        )
        return "\n" + "\n".join(lines)

    def __format__(self, spec: str) -> str:
        if spec == "x":
            return self.lower_hex()
        if spec == "X":
            return self.upper_hex()
        if spec == "":
            return str(self)
        raise ValueError(f"unknown format code {spec!r} for Array")

    def __repr__(self) -> str:
        return f"Array({bytes(self._data)!r})"

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[int]:
        return iter(self._data)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return bytes(self._data[index])
        return self._data[index]

    def __setitem__(self, index, value) -> None:
        if isinstance(index, slice):
            replacement = bytes(value)
            if len(range(*index.indices(len(self._data)))) != len(replacement):
                raise ArrayError("slice assignment would change the array size")
            self._data[index] = replacement
        else:
            self._data[index] = value

    def __bytes__(self) -> bytes:
        return bytes(self._data)

    def __eq__(self, other) -> bool:
        if isinstance(other, Array):
            return self._data == other._data
        return NotImplemented

    def __lt__(self, other) -> bool:
        if isinstance(other, Array):
            return self._data < other._data
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]