"""Bounds-checked cursor over ABI-encoded calldata.

ABI encoding lays values out in 32-byte words. The cursor keeps the current
byte offset and centralizes every bounds check so decoders never slice past
the end of the buffer silently (Python slicing would just truncate).
"""

from __future__ import annotations

from opensea_sale_indexer.decoder.errors import BufferBoundsError

WORD_SIZE = 32
ADDRESS_SIZE = 20
SELECTOR_SIZE = 4


def strip_selector(data: bytes) -> bytes:
    """Return the calldata arguments without the 4-byte function selector."""
    if len(data) < SELECTOR_SIZE:
        raise BufferBoundsError(0, SELECTOR_SIZE, len(data))
    return bytes(data[SELECTOR_SIZE:])


class CalldataCursor:
    """Sequential reader over an immutable byte buffer.

    Example:
        ```python
        cursor = CalldataCursor(data)
        offset = cursor.read_uint()
        cursor.seek(offset)
        length = cursor.read_uint()
        ```
    """

    def __init__(self, data: bytes, offset: int = 0) -> None:
        self._data = bytes(data)
        self._offset = 0
        self.seek(offset)

    @property
    def position(self) -> int:
        return self._offset

    @property
    def size(self) -> int:
        return len(self._data)

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    def require(self, length: int) -> None:
        """Ensure `length` bytes are readable from the current position."""
        if length < 0 or self._offset + length > len(self._data):
            raise BufferBoundsError(self._offset, length, len(self._data))

    def seek(self, offset: int) -> None:
        if offset < 0 or offset > len(self._data):
            raise BufferBoundsError(offset, 0, len(self._data))
        self._offset = offset

    def read_bytes(self, length: int) -> bytes:
        self.require(length)
        start = self._offset
        self._offset += length
        return self._data[start : self._offset]

    def read_word(self) -> bytes:
        return self.read_bytes(WORD_SIZE)

    def read_uint(self) -> int:
        return int.from_bytes(self.read_word(), "big")

    def read_address(self) -> str:
        """Read a right-aligned address word as lowercase 0x hex."""
        word = self.read_word()
        return "0x" + word[WORD_SIZE - ADDRESS_SIZE :].hex()

    def skip_words(self, count: int) -> None:
        self.require(count * WORD_SIZE)
        self._offset += count * WORD_SIZE
