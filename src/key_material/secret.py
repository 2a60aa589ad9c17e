"""
Sensitive Buffer Module

Holds passphrases and raw key bytes in mutable memory so they can be zeroed
once they are no longer needed.
"""

from typing import Optional, Union


class SecretBuffer:
    """Mutable byte buffer for sensitive data; clear() overwrites it with zeros."""

    __slots__ = ('_data',)

    def __init__(self, data: Union[bytes, bytearray, str] = b''):
        if isinstance(data, str):
            data = data.encode('utf-8')
        self._data = bytearray(data)

    @classmethod
    def from_optional(cls, data: Optional[Union[bytes, str]]) -> Optional['SecretBuffer']:
        return None if data is None else cls(data)

    def __len__(self) -> int:
        return len(self._data)

    def __bool__(self) -> bool:
        return len(self._data) > 0

    def __repr__(self) -> str:
        return f"SecretBuffer(<{len(self._data)} bytes>)"

    __str__ = __repr__

    def __eq__(self, other) -> bool:
        if isinstance(other, SecretBuffer):
            return self._data == other._data
        return NotImplemented

    __hash__ = None

    def __enter__(self) -> 'SecretBuffer':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.clear()

    @property
    def value(self) -> bytearray:
        """The underlying buffer (not a copy)."""
        return self._data

    def clear(self) -> None:
        for i in range(len(self._data)):
            self._data[i] = 0
        del self._data[:]
