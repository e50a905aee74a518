"""Tests for the atomicMatch_ sale handler."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from calldata import (
    BUYER,
    NFT_CONTRACT,
    OTHER_NFT_CONTRACT,
    SELLER,
    WETH,
    encode_approve,
    encode_transfer,
)

from opensea_sale_indexer.constants import ExchangeConstants
from opensea_sale_indexer.handler import SaleHandler, SaleHandlerError, SaleType
from opensea_sale_indexer.ingestor.chain import RPCError
from opensea_sale_indexer.ingestor.models import AtomicMatchCall
from opensea_sale_indexer.storage.database import DatabaseManager
from opensea_sale_indexer.storage.repos import (
    AssetRepository,
    SaleAssetLinkRepository,
    SaleRepository,
    SettlementProcessingErrorRepository,
)

TX_HASH = "0x" + "ab" * 32


async def _counts(db: DatabaseManager) -> tuple[int, int, int]:
    async with db.get_async_session() as session:
        return (
            await SaleRepository(session).count(),
            await AssetRepository(session).count(),
            await SaleAssetLinkRepository(session).count(),
        )


# ============================================================================
# Record building (no database)
# ============================================================================


class TestBuildSaleRecords:
    """Tests for the pure decoding and record building steps."""

    def test_single_sale_records(
        self, db_manager: DatabaseManager, make_call: Callable[..., AtomicMatchCall]
    ) -> None:
        handler = SaleHandler(db_manager)
        call = make_call()

        sale_type, transfers = handler.decode_transfers(call)
        records = handler.build_sale_records(
            call, sale_type=sale_type, transfers=transfers, price=handler.compute_price(call)
        )

        assert records.sale.id == TX_HASH
        assert records.sale.sale_type == "Single"
        assert records.sale.summary_tokens_sold == f"{NFT_CONTRACT}-5"
        assert records.sale.price == 100
        assert records.sale.buyer == BUYER
        assert records.sale.seller == SELLER
        assert records.sale.payment_token == WETH
        assert records.sale.block_timestamp == datetime.fromtimestamp(1_650_000_000, tz=UTC)
        assert [a.id for a in records.assets] == [f"{NFT_CONTRACT}-5"]
        assert [link.id for link in records.links] == [f"{TX_HASH}<=>{NFT_CONTRACT}-5"]

    def test_single_sale_uses_merged_calldata(
        self, db_manager: DatabaseManager, make_call: Callable[..., AtomicMatchCall]
    ) -> None:
        # The buyer leaves the token id blank; the sell side supplies it.
        call = make_call(
            calldata_buy=encode_transfer(SELLER, BUYER, 0),
            calldata_sell=encode_transfer(SELLER, BUYER, 77),
            replacement_pattern_buy=bytes(68) + b"\xff" * 32,
        )

        _, transfers = SaleHandler(db_manager).decode_transfers(call)

        assert [t.token_id for t in transfers] == ["77"]

    def test_bundle_summary_and_links_follow_call_order(
        self,
        db_manager: DatabaseManager,
        make_bundle_call: Callable[..., AtomicMatchCall],
    ) -> None:
        handler = SaleHandler(db_manager)
        call = make_bundle_call(
            [
                (NFT_CONTRACT, encode_transfer(SELLER, BUYER, 1)),
                (OTHER_NFT_CONTRACT, encode_transfer(SELLER, BUYER, 2)),
                (NFT_CONTRACT, encode_transfer(SELLER, BUYER, 3)),
            ]
        )

        sale_type, transfers = handler.decode_transfers(call)
        records = handler.build_sale_records(call, sale_type=sale_type, transfers=transfers, price=100)

        assert sale_type is SaleType.BUNDLE
        assert records.sale.summary_tokens_sold == (
            f"{NFT_CONTRACT}-1::{OTHER_NFT_CONTRACT}-2::{NFT_CONTRACT}-3"
        )
        assert [link.position for link in records.links] == [0, 1, 2]
        assert [link.asset_id for link in records.links] == [a.id for a in records.assets]

    def test_bundle_duplicates_are_listed_once(
        self,
        db_manager: DatabaseManager,
        make_bundle_call: Callable[..., AtomicMatchCall],
    ) -> None:
        handler = SaleHandler(db_manager)
        call = make_bundle_call(
            [
                (NFT_CONTRACT, encode_transfer(SELLER, BUYER, 1)),
                (NFT_CONTRACT, encode_transfer(SELLER, BUYER, 1)),
            ]
        )

        sale_type, transfers = handler.decode_transfers(call)
        records = handler.build_sale_records(call, sale_type=sale_type, transfers=transfers, price=1)

        assert records.sale.summary_tokens_sold == f"{NFT_CONTRACT}-1"
        assert len(records.assets) == len(records.links) == 1

    def test_buy_price_used_without_sell_fee_recipient(
        self,
        db_manager: DatabaseManager,
        constants: ExchangeConstants,
        make_call: Callable[..., AtomicMatchCall],
    ) -> None:
        call = make_call(buy_price=120, sell_price=90, sell_fee_recipient=constants.null_address)

        assert SaleHandler(db_manager).compute_price(call) == 120

    def test_dutch_auction_priced_at_block_timestamp(
        self, db_manager: DatabaseManager, make_call: Callable[..., AtomicMatchCall]
    ) -> None:
        # Sell side: 1000 -> 600 between t=1_649_999_900 and t=1_650_000_100.
        call = make_call(
            sell_price=1000,
            uints={14: 400, 15: 1_649_999_900, 16: 1_650_000_100},
            enums={6: 1},
        )

        assert SaleHandler(db_manager).compute_price(call) == 800


# ============================================================================
# Persistence
# ============================================================================


class TestHandleAtomicMatch:
    """Tests for SaleHandler.handle_atomic_match."""

    @pytest.mark.asyncio
    async def test_single_sale_is_persisted(
        self, db_manager: DatabaseManager, make_call: Callable[..., AtomicMatchCall]
    ) -> None:
        handler = SaleHandler(db_manager)

        sale = await handler.handle_atomic_match(make_call())

        assert sale is not None
        async with db_manager.get_async_session() as session:
            stored = await SaleRepository(session).get(TX_HASH)
            asset = await AssetRepository(session).get(f"{NFT_CONTRACT}-5")
            links = await SaleAssetLinkRepository(session).list_for_sale(TX_HASH)
        assert stored is not None
        assert stored.price == 100
        assert stored.sale_type == "Single"
        assert asset is not None
        assert asset.token_id == "5"
        assert [link.asset_id for link in links] == [f"{NFT_CONTRACT}-5"]
        assert handler.stats.created == 1

    @pytest.mark.asyncio
    async def test_bundle_sale_is_persisted(
        self, db_manager: DatabaseManager, make_bundle_call: Callable[..., AtomicMatchCall]
    ) -> None:
        handler = SaleHandler(db_manager)
        call = make_bundle_call(
            [
                (NFT_CONTRACT, encode_transfer(SELLER, BUYER, 1)),
                (OTHER_NFT_CONTRACT, encode_approve(BUYER, 1)),
                (OTHER_NFT_CONTRACT, encode_transfer(SELLER, BUYER, 2)),
            ]
        )

        sale = await handler.handle_atomic_match(call)

        assert sale is not None
        assert sale.sale_type == "Bundle"
        assert await _counts(db_manager) == (1, 2, 2)

    @pytest.mark.asyncio
    async def test_three_entry_bundle_across_two_contracts(
        self, db_manager: DatabaseManager, make_bundle_call: Callable[..., AtomicMatchCall]
    ) -> None:
        handler = SaleHandler(db_manager)
        call = make_bundle_call(
            [
                (NFT_CONTRACT, encode_transfer(SELLER, BUYER, 1)),
                (OTHER_NFT_CONTRACT, encode_transfer(SELLER, BUYER, 2)),
                (NFT_CONTRACT, encode_transfer(SELLER, BUYER, 3)),
            ]
        )

        await handler.handle_atomic_match(call)

        assert await _counts(db_manager) == (1, 3, 3)
        async with db_manager.get_async_session() as session:
            stored = await SaleRepository(session).get(TX_HASH)
            links = await SaleAssetLinkRepository(session).list_for_sale(TX_HASH)
        assert stored is not None
        assert stored.sale_type == "Bundle"
        assert stored.summary_tokens_sold == (
            f"{NFT_CONTRACT}-1::{OTHER_NFT_CONTRACT}-2::{NFT_CONTRACT}-3"
        )
        assert [link.asset_id for link in links] == [
            f"{NFT_CONTRACT}-1",
            f"{OTHER_NFT_CONTRACT}-2",
            f"{NFT_CONTRACT}-3",
        ]

    @pytest.mark.asyncio
    async def test_wei_price_and_timestamp_survive_storage(
        self, db_manager: DatabaseManager, make_call: Callable[..., AtomicMatchCall]
    ) -> None:
        handler = SaleHandler(db_manager)
        price = 1_234_567_891_234_567_891
        call = make_call(buy_price=price, sell_price=price)

        await handler.handle_atomic_match(call)

        async with db_manager.get_async_session() as session:
            stored = await SaleRepository(session).get(TX_HASH)
        assert stored is not None
        assert stored.price == price
        assert stored.block_timestamp == datetime.fromtimestamp(1_650_000_000, tz=UTC)
        assert stored.block_timestamp.tzinfo is not None

    @pytest.mark.asyncio
    async def test_replay_is_a_no_op(
        self, db_manager: DatabaseManager, make_call: Callable[..., AtomicMatchCall]
    ) -> None:
        handler = SaleHandler(db_manager)
        call = make_call()

        await handler.handle_atomic_match(call)
        again = await handler.handle_atomic_match(call)

        assert again is None
        assert await _counts(db_manager) == (1, 1, 1)
        assert handler.stats.skipped == 1

    @pytest.mark.asyncio
    async def test_assets_are_shared_across_sales(
        self, db_manager: DatabaseManager, make_call: Callable[..., AtomicMatchCall]
    ) -> None:
        handler = SaleHandler(db_manager)

        await handler.handle_atomic_match(make_call())
        await handler.handle_atomic_match(make_call(transaction_hash="0x" + "cd" * 32))

        assert await _counts(db_manager) == (2, 1, 2)
        async with db_manager.get_async_session() as session:
            links = await SaleAssetLinkRepository(session).list_for_asset(f"{NFT_CONTRACT}-5")
        assert len(links) == 2

    @pytest.mark.asyncio
    async def test_decode_failure_writes_nothing_and_records_error(
        self, db_manager: DatabaseManager, make_call: Callable[..., AtomicMatchCall]
    ) -> None:
        handler = SaleHandler(db_manager)
        truncated = encode_transfer(SELLER, BUYER, 5)[:40]
        call = make_call(calldata_buy=truncated, calldata_sell=truncated, replacement_pattern_buy=bytes(40))

        with pytest.raises(SaleHandlerError) as exc_info:
            await handler.handle_atomic_match(call)

        assert exc_info.value.stage == "decode"
        assert await _counts(db_manager) == (0, 0, 0)
        async with db_manager.get_async_session() as session:
            errors = await SettlementProcessingErrorRepository(session).list_for_transaction(TX_HASH)
        assert [(e.stage, e.error_type) for e in errors] == [("decode", "BufferBoundsError")]

    @pytest.mark.asyncio
    async def test_empty_bundle_is_a_failure(
        self, db_manager: DatabaseManager, make_bundle_call: Callable[..., AtomicMatchCall]
    ) -> None:
        handler = SaleHandler(db_manager)
        call = make_bundle_call([(NFT_CONTRACT, encode_approve(BUYER, 1))])

        with pytest.raises(SaleHandlerError) as exc_info:
            await handler.handle_atomic_match(call)

        assert exc_info.value.stage == "decode"
        assert type(exc_info.value.cause).__name__ == "EmptyBundleError"
        assert await _counts(db_manager) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_pricing_failure_is_recorded(
        self, db_manager: DatabaseManager, make_call: Callable[..., AtomicMatchCall]
    ) -> None:
        handler = SaleHandler(db_manager)
        # Dutch auction listed after the settlement block.
        call = make_call(uints={14: 10, 15: 1_700_000_000, 16: 1_800_000_000}, enums={6: 1})

        with pytest.raises(SaleHandlerError) as exc_info:
            await handler.handle_atomic_match(call)

        assert exc_info.value.stage == "pricing"
        assert await _counts(db_manager) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_non_strict_mode_continues(
        self, db_manager: DatabaseManager, make_call: Callable[..., AtomicMatchCall]
    ) -> None:
        handler = SaleHandler(db_manager, strict=False)
        bad = make_call(enums={6: 9})
        good = make_call(transaction_hash="0x" + "cd" * 32)

        assert await handler.handle_atomic_match(bad) is None
        assert await handler.handle_atomic_match(good) is not None

        assert handler.stats.failed == 1
        assert handler.stats.created == 1
        assert handler.stats.processed == 2
        async with db_manager.get_async_session() as session:
            errors = await SettlementProcessingErrorRepository(session).list_for_transaction(TX_HASH)
        assert [e.stage for e in errors] == ["pricing"]

    @pytest.mark.asyncio
    async def test_unequal_calldata_lengths_are_recorded(
        self, db_manager: DatabaseManager, make_call: Callable[..., AtomicMatchCall]
    ) -> None:
        handler = SaleHandler(db_manager, strict=False)
        call = make_call(calldata_sell=encode_transfer(SELLER, BUYER, 5) + b"\x00")

        assert await handler.handle_atomic_match(call) is None

        assert handler.stats.failed == 1
        assert await _counts(db_manager) == (0, 0, 0)
        async with db_manager.get_async_session() as session:
            errors = await SettlementProcessingErrorRepository(session).list_for_transaction(TX_HASH)
        assert [(e.stage, e.error_type) for e in errors] == [("decode", "MergeLengthError")]

    @pytest.mark.asyncio
    async def test_failed_settlement_can_be_retried(
        self, db_manager: DatabaseManager, make_call: Callable[..., AtomicMatchCall]
    ) -> None:
        oracle = MagicMock()
        oracle.calculate_match_price = AsyncMock(side_effect=[RPCError("timeout"), 100])
        handler = SaleHandler(db_manager, price_oracle=oracle, strict=False)

        assert await handler.handle_atomic_match(make_call()) is None
        assert await handler.handle_atomic_match(make_call()) is not None
        assert (handler.stats.failed, handler.stats.created) == (1, 1)
        assert await _counts(db_manager) == (1, 1, 1)


class TestPriceOracle:
    """Tests for the optional on-chain price cross-check."""

    @pytest.mark.asyncio
    async def test_matching_oracle_price(
        self, db_manager: DatabaseManager, make_call: Callable[..., AtomicMatchCall]
    ) -> None:
        oracle = MagicMock()
        oracle.calculate_match_price = AsyncMock(return_value=100)
        handler = SaleHandler(db_manager, price_oracle=oracle)
        call = make_call()

        sale = await handler.handle_atomic_match(call)

        assert sale is not None
        assert sale.price == 100
        assert oracle.calculate_match_price.call_args.kwargs["block_number"] == call.block_number

    @pytest.mark.asyncio
    async def test_mismatch_keeps_oracle_price(
        self,
        db_manager: DatabaseManager,
        make_call: Callable[..., AtomicMatchCall],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        oracle = MagicMock()
        oracle.calculate_match_price = AsyncMock(return_value=99)
        handler = SaleHandler(db_manager, price_oracle=oracle)

        with caplog.at_level(logging.WARNING, logger="opensea_sale_indexer.handler"):
            sale = await handler.handle_atomic_match(make_call())

        assert sale is not None
        assert sale.price == 99
        assert "Price mismatch" in caplog.text

    @pytest.mark.asyncio
    async def test_oracle_failure_is_recorded(
        self, db_manager: DatabaseManager, make_call: Callable[..., AtomicMatchCall]
    ) -> None:
        oracle = MagicMock()
        oracle.calculate_match_price = AsyncMock(side_effect=RPCError("timeout"))
        handler = SaleHandler(db_manager, price_oracle=oracle)

        with pytest.raises(SaleHandlerError) as exc_info:
            await handler.handle_atomic_match(make_call())

        assert exc_info.value.stage == "oracle"
        assert await _counts(db_manager) == (0, 0, 0)
