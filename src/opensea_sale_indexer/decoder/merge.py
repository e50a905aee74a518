"""Guarded byte-array replacement (Wyvern ArrayUtils.guardedArrayReplace)."""

from __future__ import annotations

from opensea_sale_indexer.decoder.errors import MergeLengthError


def guarded_array_replace(array: bytes, replacement: bytes, mask: bytes) -> bytes:
    """Overwrite bits of `array` with bits of `replacement` wherever `mask` is set.

    The exchange merges the buy-side calldata with the sell-side calldata under
    the buyer's replacement pattern before executing the call; this recovers the
    calldata that actually ran on-chain.

    All three buffers are treated as big-endian unsigned integers of the same
    width, so the bitwise merge is exact for any length and leading zero bytes
    survive the round trip. Masked bits of `array` are cleared before the
    replacement bits are applied, which equals `array | (replacement & mask)`
    whenever the masked region of `array` is zero (the usual Wyvern order shape).

    Args:
        array: The original calldata.
        replacement: The calldata providing replacement bits.
        mask: Bitmask of the bits that may be changed in `array`.

    Returns:
        The merged calldata, same length as the inputs.

    Raises:
        MergeLengthError: If the buffers do not share the same length.
    """
    size = len(array)
    if len(replacement) != size or len(mask) != size:
        raise MergeLengthError(
            f"Buffers must have equal length (array={size}, replacement={len(replacement)}, mask={len(mask)})"
        )

    original_value = int.from_bytes(array, "big")
    replacement_value = int.from_bytes(replacement, "big")
    mask_value = int.from_bytes(mask, "big")
    full_width = (1 << (8 * size)) - 1

    merged = (original_value & (full_width ^ mask_value)) | (replacement_value & mask_value)
    return merged.to_bytes(size, "big")
