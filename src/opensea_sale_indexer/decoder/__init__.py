"""Calldata decoding layer - Merged calldata and bundle transfer extraction."""

from opensea_sale_indexer.decoder.bundle import (
    AtomicizeCall,
    BundleTransfer,
    decode_atomicize_call,
    decode_bundle,
)
from opensea_sale_indexer.decoder.cursor import CalldataCursor, strip_selector
from opensea_sale_indexer.decoder.errors import (
    BufferBoundsError,
    DecodeError,
    EmptyBundleError,
    MergeLengthError,
    ShapeMismatchError,
)
from opensea_sale_indexer.decoder.merge import guarded_array_replace
from opensea_sale_indexer.decoder.transfer import (
    TransferCall,
    decode_transfer_token_id,
    parse_transfer_call,
)

__all__ = [
    "AtomicizeCall",
    "BufferBoundsError",
    "BundleTransfer",
    "CalldataCursor",
    "DecodeError",
    "EmptyBundleError",
    "MergeLengthError",
    "ShapeMismatchError",
    "TransferCall",
    "decode_atomicize_call",
    "decode_bundle",
    "decode_transfer_token_id",
    "guarded_array_replace",
    "parse_transfer_call",
    "strip_selector",
]
