"""Tests for atomicizer bundle decoding."""

import pytest
from calldata import (
    ATOMICIZE,
    BUYER,
    NFT_CONTRACT,
    OTHER_NFT_CONTRACT,
    SELLER,
    TRANSFER_FROM,
    encode_approve,
    encode_atomicize,
    encode_transfer,
)
from eth_abi import encode

from opensea_sale_indexer.decoder.bundle import BundleTransfer, decode_atomicize_call, decode_bundle
from opensea_sale_indexer.decoder.errors import BufferBoundsError, ShapeMismatchError


@pytest.fixture
def two_entry_bundle() -> bytes:
    return encode_atomicize(
        [
            (NFT_CONTRACT, encode_transfer(SELLER, BUYER, 7)),
            (OTHER_NFT_CONTRACT, encode_transfer(SELLER, BUYER, 9)),
        ]
    )


class TestDecodeAtomicizeCall:
    """Tests for decode_atomicize_call."""

    def test_reads_addresses_and_lengths(self, two_entry_bundle: bytes) -> None:
        call = decode_atomicize_call(two_entry_bundle)

        assert call.addresses == (NFT_CONTRACT, OTHER_NFT_CONTRACT)
        assert call.calldata_lengths == (100, 100)
        assert len(call.calldatas) == 200

    def test_splits_calldatas(self, two_entry_bundle: bytes) -> None:
        call = decode_atomicize_call(two_entry_bundle)

        assert call.iter_calldatas() == [
            encode_transfer(SELLER, BUYER, 7),
            encode_transfer(SELLER, BUYER, 9),
        ]

    def test_empty_arrays(self) -> None:
        call = decode_atomicize_call(encode_atomicize([]))

        assert call.addresses == ()
        assert call.iter_calldatas() == []


class TestDecodeBundle:
    """Tests for decode_bundle."""

    def test_returns_transfers_in_order(self, two_entry_bundle: bytes) -> None:
        transfers = decode_bundle(two_entry_bundle, transfer_selector=TRANSFER_FROM)

        assert transfers == [
            BundleTransfer(contract_address=NFT_CONTRACT, token_id="7"),
            BundleTransfer(contract_address=OTHER_NFT_CONTRACT, token_id="9"),
        ]

    def test_skips_non_transfer_entries(self) -> None:
        data = encode_atomicize(
            [
                (NFT_CONTRACT, encode_transfer(SELLER, BUYER, 1)),
                (OTHER_NFT_CONTRACT, encode_approve(BUYER, 1)),
                (NFT_CONTRACT, encode_transfer(SELLER, BUYER, 2)),
            ]
        )

        transfers = decode_bundle(data, transfer_selector=TRANSFER_FROM)

        assert [t.token_id for t in transfers] == ["1", "2"]

    def test_all_non_transfer_entries_yield_nothing(self) -> None:
        data = encode_atomicize([(NFT_CONTRACT, encode_approve(BUYER, 1))])

        assert decode_bundle(data, transfer_selector=TRANSFER_FROM) == []

    def test_truncated_bundle_raises(self, two_entry_bundle: bytes) -> None:
        with pytest.raises(BufferBoundsError):
            decode_bundle(two_entry_bundle[:200], transfer_selector=TRANSFER_FROM)

    def test_selector_only_raises(self) -> None:
        with pytest.raises(BufferBoundsError):
            decode_bundle(ATOMICIZE, transfer_selector=TRANSFER_FROM)


class TestShapeValidation:
    """Tests for atomicize() array length checks."""

    @staticmethod
    def _encode(addresses: list[str], values: list[int], lengths: list[int], blob: bytes) -> bytes:
        return ATOMICIZE + encode(
            ["address[]", "uint256[]", "uint256[]", "bytes"],
            [addresses, values, lengths, blob],
        )

    def test_values_length_mismatch_raises(self) -> None:
        transfer = encode_transfer(SELLER, BUYER, 7)
        data = self._encode([NFT_CONTRACT], [0, 0], [len(transfer)], transfer)

        with pytest.raises(ShapeMismatchError, match="values"):
            decode_bundle(data, transfer_selector=TRANSFER_FROM)

    def test_lengths_exceeding_blob_raise(self) -> None:
        transfer = encode_transfer(SELLER, BUYER, 7)
        data = self._encode([NFT_CONTRACT], [0], [len(transfer) + 32], transfer)

        with pytest.raises(ShapeMismatchError, match="calldatas"):
            decode_bundle(data, transfer_selector=TRANSFER_FROM)

    def test_unvalidated_walk_trusts_addrs_length(self) -> None:
        transfer = encode_transfer(SELLER, BUYER, 7)
        data = self._encode([NFT_CONTRACT], [0, 0], [len(transfer)], transfer)

        # Skipping one `values` word leaves the walk one word behind, so every
        # later field is misread and no transfer is found.
        assert decode_bundle(data, transfer_selector=TRANSFER_FROM, validate_shape=False) == []

    def test_unvalidated_walk_decodes_well_formed_bundle(self, two_entry_bundle: bytes) -> None:
        transfers = decode_bundle(two_entry_bundle, transfer_selector=TRANSFER_FROM, validate_shape=False)

        assert [t.token_id for t in transfers] == ["7", "9"]
