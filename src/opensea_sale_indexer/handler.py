"""atomicMatch_ handler: turns one settlement call into sale records.

The handler is invoked once per settlement, in block order. For each call it:
1. Routes on the sell order target (atomicizer = bundle, otherwise single)
2. Rebuilds the executed calldata from the buy/sell calldata and pattern
3. Decodes the transferred NFTs
4. Computes the settlement price (optionally cross-checked on-chain)
5. Persists the sale, its assets and lookup links in one transaction

Decoding and pricing are pure and finish before anything is written, so a
failing settlement never leaves partial records behind.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING

from opensea_sale_indexer.constants import (
    SUMMARY_SEPARATOR,
    ExchangeConstants,
    asset_key,
    get_constants,
    link_key,
)
from opensea_sale_indexer.decoder.bundle import BundleTransfer, decode_bundle
from opensea_sale_indexer.decoder.errors import DecodeError, EmptyBundleError
from opensea_sale_indexer.decoder.merge import guarded_array_replace
from opensea_sale_indexer.decoder.transfer import decode_transfer_token_id
from opensea_sale_indexer.ingestor.chain import EthereumClientError
from opensea_sale_indexer.pricing.calculator import PricingError, calculate_match_price
from opensea_sale_indexer.storage.repos import (
    AssetDTO,
    AssetRepository,
    SaleAssetLinkDTO,
    SaleAssetLinkRepository,
    SaleDTO,
    SaleRepository,
    SettlementProcessingErrorDTO,
    SettlementProcessingErrorRepository,
)

if TYPE_CHECKING:
    from opensea_sale_indexer.ingestor.models import AtomicMatchCall
    from opensea_sale_indexer.pricing.oracle import ExchangePriceOracle
    from opensea_sale_indexer.storage.database import DatabaseManager

logger = logging.getLogger(__name__)


class SaleType(str, Enum):
    """Shape of an OpenSea sale."""

    SINGLE = "Single"
    BUNDLE = "Bundle"


class SaleHandlerError(Exception):
    """Raised when a settlement cannot be indexed."""

    def __init__(self, transaction_hash: str, stage: str, cause: Exception) -> None:
        self.transaction_hash = transaction_hash
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage} failed for {transaction_hash}: {type(cause).__name__}: {cause}")


@dataclass(frozen=True)
class SaleRecords:
    """Every record produced by one settlement, ready to persist together."""

    sale: SaleDTO
    assets: tuple[AssetDTO, ...]
    links: tuple[SaleAssetLinkDTO, ...]


@dataclass
class HandlerStats:
    """Counters for one handler instance."""

    processed: int = 0
    created: int = 0
    skipped: int = 0
    failed: int = 0
    last_error: str | None = None


class SaleHandler:
    """Indexes atomicMatch_ settlements as OpenSea sales.

    Example:
        ```python
        db = DatabaseManager("postgresql+asyncpg://...")
        handler = SaleHandler(db)
        for call in calls:
            await handler.handle_atomic_match(call)
        ```
    """

    def __init__(
        self,
        db: DatabaseManager,
        *,
        constants: ExchangeConstants | None = None,
        validate_bundle_shape: bool = True,
        price_oracle: ExchangePriceOracle | None = None,
        strict: bool = True,
    ) -> None:
        """Initialize the handler.

        Args:
            db: Database manager providing transactional sessions.
            constants: Exchange addresses and selectors.
            validate_bundle_shape: Reject bundles with inconsistent array lengths.
            price_oracle: Optional on-chain price cross-check.
            strict: Raise `SaleHandlerError` on failure instead of recording
                the error and moving on.
        """
        self._db = db
        self._constants = constants or get_constants()
        self._validate_bundle_shape = validate_bundle_shape
        self._price_oracle = price_oracle
        self._strict = strict
        self._stats = HandlerStats()

    @property
    def stats(self) -> HandlerStats:
        return self._stats

    def sale_type_for(self, call: AtomicMatchCall) -> SaleType:
        """Bundle sales target the atomicizer; single sales target the NFT contract."""
        if call.target.lower() == self._constants.atomicizer_address:
            return SaleType.BUNDLE
        return SaleType.SINGLE

    def merged_calldata(self, call: AtomicMatchCall) -> bytes:
        """Merge sell order data into buy order data, as the exchange does."""
        return guarded_array_replace(
            call.calldata_buy,
            call.calldata_sell,
            call.replacement_pattern_buy,
        )

    def decode_transfers(self, call: AtomicMatchCall) -> tuple[SaleType, list[BundleTransfer]]:
        """Return the sale shape and the NFTs it transferred, in call order.

        Raises:
            DecodeError: If the merged calldata cannot be decoded.
        """
        sale_type = self.sale_type_for(call)
        merged = self.merged_calldata(call)

        if sale_type is SaleType.SINGLE:
            token_id = decode_transfer_token_id(merged)
            return sale_type, [BundleTransfer(contract_address=call.target.lower(), token_id=token_id)]

        transfers = decode_bundle(
            merged,
            transfer_selector=self._constants.transfer_from_selector_bytes,
            validate_shape=self._validate_bundle_shape,
        )
        if not transfers:
            raise EmptyBundleError(f"Bundle in {call.transaction_hash} has no transferFrom entry")
        return sale_type, transfers

    def compute_price(self, call: AtomicMatchCall) -> int:
        """Compute the match price at the settlement block's timestamp.

        Raises:
            PricingError: If the exchange formula would revert.
        """
        return calculate_match_price(
            call.buy_pricing(),
            call.sell_pricing(),
            call.sell_fee_recipient,
            now=call.block_timestamp,
            null_address=self._constants.null_address,
        )

    def build_sale_records(
        self,
        call: AtomicMatchCall,
        *,
        sale_type: SaleType,
        transfers: list[BundleTransfer],
        price: int,
    ) -> SaleRecords:
        """Assemble the sale, asset and link records for one settlement.

        The summary lists each asset key once, in discovery order, matching
        the set of links exactly.
        """
        sale_id = call.transaction_hash.lower()

        asset_ids: list[str] = []
        assets: list[AssetDTO] = []
        for transfer in transfers:
            asset_id = asset_key(transfer.contract_address, transfer.token_id)
            if asset_id in asset_ids:
                logger.debug("Duplicate asset %s in %s", asset_id, sale_id)
                continue
            asset_ids.append(asset_id)
            assets.append(
                AssetDTO(
                    id=asset_id,
                    contract_address=transfer.contract_address.lower(),
                    token_id=transfer.token_id,
                )
            )

        sale = SaleDTO(
            id=sale_id,
            sale_type=sale_type.value,
            block_number=call.block_number,
            block_timestamp=datetime.fromtimestamp(call.block_timestamp, tz=UTC),
            buyer=call.buyer,
            seller=call.seller,
            payment_token=call.payment_token,
            price=price,
            summary_tokens_sold=SUMMARY_SEPARATOR.join(asset_ids),
        )
        links = tuple(
            SaleAssetLinkDTO(id=link_key(sale_id, asset_id), sale_id=sale_id, asset_id=asset_id, position=i)
            for i, asset_id in enumerate(asset_ids)
        )
        return SaleRecords(sale=sale, assets=tuple(assets), links=links)

    async def _cross_check_price(
        self, oracle: ExchangePriceOracle, call: AtomicMatchCall, price: int
    ) -> int:
        oracle_price = await oracle.calculate_match_price(
            call.buy_pricing(),
            call.sell_pricing(),
            call.sell_fee_recipient,
            block_number=call.block_number,
            null_address=self._constants.null_address,
        )
        if oracle_price != price:
            logger.warning(
                "Price mismatch for %s: computed %d, exchange reports %d; keeping exchange price",
                call.transaction_hash,
                price,
                oracle_price,
            )
        return oracle_price

    async def _persist(self, records: SaleRecords) -> bool:
        async with self._db.get_async_session() as session:
            asset_repo = AssetRepository(session)
            sale_repo = SaleRepository(session)
            link_repo = SaleAssetLinkRepository(session)

            # Assets must exist before anything links to them.
            for asset in records.assets:
                await asset_repo.get_or_create(asset)

            if not await sale_repo.insert_if_absent(records.sale):
                return False

            for link in records.links:
                await link_repo.insert_if_absent(link)
        return True

    async def _record_failure(self, call: AtomicMatchCall, stage: str, error: Exception) -> None:
        self._stats.failed += 1
        self._stats.last_error = str(error)
        logger.error(
            "Failed to index %s at stage %s: %s: %s",
            call.transaction_hash,
            stage,
            type(error).__name__,
            error,
        )
        try:
            async with self._db.get_async_session() as session:
                await SettlementProcessingErrorRepository(session).insert(
                    SettlementProcessingErrorDTO(
                        transaction_hash=call.transaction_hash.lower(),
                        stage=stage,
                        error_type=type(error).__name__,
                        message=str(error),
                    )
                )
        except Exception as e:
            logger.error("Failed to record processing error for %s: %s", call.transaction_hash, e)

    async def _fail(self, call: AtomicMatchCall, stage: str, error: Exception) -> None:
        await self._record_failure(call, stage, error)
        if self._strict:
            raise SaleHandlerError(call.transaction_hash, stage, error) from error

    async def handle_atomic_match(self, call: AtomicMatchCall) -> SaleDTO | None:
        """Index one atomicMatch_ call.

        Returns:
            The created sale, or None when the sale already existed or the
            settlement failed in non-strict mode.

        Raises:
            SaleHandlerError: In strict mode, if decoding, pricing or
                persistence fails. No records are written in that case.
        """
        self._stats.processed += 1
        sale_id = call.transaction_hash.lower()

        async with self._db.get_async_session() as session:
            already_indexed = await SaleRepository(session).exists(sale_id)
        if already_indexed:
            logger.debug("Sale %s already indexed; skipping", sale_id)
            self._stats.skipped += 1
            return None

        stage = "decode"
        try:
            sale_type, transfers = self.decode_transfers(call)
            stage = "pricing"
            price = self.compute_price(call)
            if self._price_oracle is not None:
                stage = "oracle"
                price = await self._cross_check_price(self._price_oracle, call, price)
        except (DecodeError, PricingError, EthereumClientError) as e:
            await self._fail(call, stage, e)
            return None

        records = self.build_sale_records(call, sale_type=sale_type, transfers=transfers, price=price)

        try:
            created = await self._persist(records)
        except Exception as e:
            await self._fail(call, "storage", e)
            return None

        if not created:
            self._stats.skipped += 1
            return None

        self._stats.created += 1
        logger.info(
            "Indexed %s sale %s: %d asset(s), price %d",
            records.sale.sale_type,
            sale_id,
            len(records.assets),
            records.sale.price,
        )
        return records.sale
