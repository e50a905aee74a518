"""Calldata decoding errors."""


class DecodeError(Exception):
    """Base exception for calldata decoding failures."""


class BufferBoundsError(DecodeError):
    """Raised when a read would go past the end of the buffer."""

    def __init__(self, offset: int, length: int, size: int) -> None:
        self.offset = offset
        self.length = length
        self.size = size
        super().__init__(
            f"Read of {length} byte(s) at offset {offset} exceeds buffer of {size} byte(s)"
        )


class ShapeMismatchError(DecodeError):
    """Raised when the atomicize array lengths disagree."""


class EmptyBundleError(DecodeError):
    """Raised when a bundle contains no transfer entry at all."""


class MergeLengthError(DecodeError, ValueError):
    """Raised when calldata, replacement and mask differ in length."""
