"""Decoding of WyvernAtomicizer bundle calldata.

Bundle sales target the atomicizer library, whose entry point is

    atomicize(address[] addrs, uint256[] values, uint256[] calldataLengths, bytes calldatas)

Each index `i` describes one sub-call: `addrs[i]` is the NFT contract and the
`i`-th slice of `calldatas` (sized by `calldataLengths[i]`) is the calldata sent
to it. All four parameters are dynamic, so the head holds offsets and the
bodies follow one another in declaration order. The walker reads the offset of
the first body and then consumes the remaining bodies sequentially.

Layout after the selector (offsets relative to that point):

    [head: 4 offset words]
    addrs:           length L, L address words
    values:          length L, L uint words (unused)
    calldataLengths: length L, L uint words
    calldatas:       byte length N, N bytes (zero padded to a word boundary)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from opensea_sale_indexer.decoder.cursor import (
    SELECTOR_SIZE,
    WORD_SIZE,
    CalldataCursor,
    strip_selector,
)
from opensea_sale_indexer.decoder.errors import ShapeMismatchError
from opensea_sale_indexer.decoder.transfer import parse_transfer_call

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BundleTransfer:
    """One NFT transferred inside a bundle."""

    contract_address: str
    token_id: str


@dataclass(frozen=True)
class AtomicizeCall:
    """Raw atomicize() parameters needed to locate the transfers."""

    addresses: tuple[str, ...]
    calldata_lengths: tuple[int, ...]
    calldatas: bytes

    def iter_calldatas(self) -> list[bytes]:
        """Split the concatenated calldatas blob using the per-entry lengths."""
        blob = CalldataCursor(self.calldatas)
        return [blob.read_bytes(length) for length in self.calldata_lengths]


def _read_length_word(cursor: CalldataCursor, expected: int, name: str, *, validate: bool) -> None:
    length = cursor.read_uint()
    if validate and length != expected:
        raise ShapeMismatchError(f"{name} has {length} entries, addrs has {expected}")


def decode_atomicize_call(data: bytes, *, validate_shape: bool = True) -> AtomicizeCall:
    """Walk the atomicize() calldata and return its raw parameters.

    Args:
        data: Full calldata including the 4-byte selector.
        validate_shape: Check that every array declares the same length as
            `addrs` and that the entry lengths fit in the calldatas blob.

    Raises:
        BufferBoundsError: If any offset or length points past the buffer.
        ShapeMismatchError: If `validate_shape` is set and the arrays disagree.
    """
    cursor = CalldataCursor(strip_selector(data))

    # The params are all dynamic; the first head word points at the addrs body.
    cursor.seek(cursor.read_uint())

    # All arrays must share this length, so reading the first one is enough.
    array_length = cursor.read_uint()
    cursor.require(array_length * WORD_SIZE)
    addresses = tuple(cursor.read_address() for _ in range(array_length))

    # values: only the advance matters.
    _read_length_word(cursor, array_length, "values", validate=validate_shape)
    cursor.skip_words(array_length)

    _read_length_word(cursor, array_length, "calldataLengths", validate=validate_shape)
    cursor.require(array_length * WORD_SIZE)
    calldata_lengths = tuple(cursor.read_uint() for _ in range(array_length))

    calldatas_length = cursor.read_uint()
    calldatas = cursor.read_bytes(calldatas_length)

    if validate_shape and sum(calldata_lengths) > calldatas_length:
        raise ShapeMismatchError(
            f"calldataLengths add up to {sum(calldata_lengths)} bytes, calldatas holds {calldatas_length}"
        )

    return AtomicizeCall(
        addresses=addresses,
        calldata_lengths=calldata_lengths,
        calldatas=calldatas,
    )


def decode_bundle(
    data: bytes,
    *,
    transfer_selector: bytes,
    validate_shape: bool = True,
) -> list[BundleTransfer]:
    """Return the (contract, token id) pairs transferred by an atomicize() call.

    Sub-calls whose selector is not `transfer_selector` are skipped: a bundle
    may legitimately contain other calls and they must not produce an asset.
    Decoding is all-or-nothing; any bounds error aborts the whole bundle.
    """
    call = decode_atomicize_call(data, validate_shape=validate_shape)

    transfers: list[BundleTransfer] = []
    for index, (contract_address, calldata) in enumerate(
        zip(call.addresses, call.iter_calldatas(), strict=True)
    ):
        transfer = parse_transfer_call(calldata, transfer_selector)
        if transfer is None:
            logger.debug(
                "Skipping non-transfer bundle entry %d on %s (selector=0x%s)",
                index,
                contract_address,
                calldata[:SELECTOR_SIZE].hex(),
            )
            continue
        transfers.append(BundleTransfer(contract_address=contract_address, token_id=transfer.token_id))

    return transfers
