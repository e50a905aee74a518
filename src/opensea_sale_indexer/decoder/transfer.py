"""Decoding of single transferFrom-shaped calldata."""

from __future__ import annotations

from dataclasses import dataclass

from opensea_sale_indexer.decoder.cursor import SELECTOR_SIZE, CalldataCursor, strip_selector


@dataclass(frozen=True)
class TransferCall:
    """A decoded `transferFrom(address from, address to, uint256 tokenId)` call."""

    from_address: str
    to_address: str
    token_id: str


def _decode_transfer_arguments(data: bytes) -> TransferCall:
    cursor = CalldataCursor(strip_selector(data))
    from_address = cursor.read_address()
    to_address = cursor.read_address()
    token_id = cursor.read_uint()
    return TransferCall(from_address=from_address, to_address=to_address, token_id=str(token_id))


def decode_transfer_token_id(data: bytes) -> str:
    """Return the token id (decimal string) of a transfer calldata.

    The selector is not checked: ERC1155 `safeTransferFrom` also carries the
    token id in the third word, so single-asset sales of either standard decode
    the same way.

    Raises:
        BufferBoundsError: If `data` is shorter than selector + 3 words.
    """
    return _decode_transfer_arguments(data).token_id


def has_selector(data: bytes, selector: bytes) -> bool:
    return len(data) >= SELECTOR_SIZE and data[:SELECTOR_SIZE] == selector


def parse_transfer_call(data: bytes, selector: bytes) -> TransferCall | None:
    """Decode `data` if it starts with `selector`, otherwise return None."""
    if not has_selector(data, selector):
        return None
    return _decode_transfer_arguments(data)
