"""Repository pattern implementations for data access.

This module provides clean data access abstractions for assets, sales, the
sale <=> asset lookup table and per-transaction processing errors.

Every write is an insert-if-absent keyed by the documented composite ids, so
replaying a settlement never duplicates rows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from opensea_sale_indexer.storage.models import (
    AssetModel,
    SaleAssetLinkModel,
    SaleModel,
    SettlementProcessingErrorModel,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from opensea_sale_indexer.storage.models import Base

logger = logging.getLogger(__name__)


async def _insert_if_absent(
    session: AsyncSession,
    model: type[Base],
    values: dict[str, Any],
    *,
    index_elements: list[str],
) -> bool:
    """Insert a row unless one with the same key exists.

    Returns:
        True if a row was inserted.
    """
    dialect = session.get_bind().dialect.name
    insert = pg_insert if dialect == "postgresql" else sqlite_insert
    stmt = insert(model).values(**values).on_conflict_do_nothing(index_elements=index_elements)
    result = await session.execute(stmt)
    await session.flush()
    return bool(result.rowcount)


@dataclass
class AssetDTO:
    """Data transfer object for assets."""

    id: str
    contract_address: str
    token_id: str
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: AssetModel) -> AssetDTO:
        return cls(
            id=model.id,
            contract_address=model.contract_address,
            token_id=model.token_id,
            created_at=model.created_at,
        )


class AssetRepository:
    """Repository for NFT assets (get-or-create only)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, asset_id: str) -> AssetDTO | None:
        result = await self.session.execute(select(AssetModel).where(AssetModel.id == asset_id))
        model = result.scalar_one_or_none()
        return AssetDTO.from_model(model) if model else None

    async def get_or_create(self, dto: AssetDTO) -> AssetDTO:
        """Return the stored asset, creating it on first reference."""
        existing = await self.get(dto.id)
        if existing is not None:
            return existing

        model = AssetModel(
            id=dto.id,
            contract_address=dto.contract_address.lower(),
            token_id=dto.token_id,
            created_at=dto.created_at or datetime.now(UTC),
        )
        self.session.add(model)
        await self.session.flush()
        logger.debug("Created asset %s", dto.id)
        return AssetDTO.from_model(model)

    async def count(self) -> int:
        result = await self.session.execute(select(sa.func.count()).select_from(AssetModel))
        return int(result.scalar_one())


@dataclass
class SaleDTO:
    """Data transfer object for sales."""

    id: str
    sale_type: str
    block_number: int
    block_timestamp: datetime
    buyer: str
    seller: str
    payment_token: str
    price: int
    summary_tokens_sold: str
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: SaleModel) -> SaleDTO:
        return cls(
            id=model.id,
            sale_type=model.sale_type,
            block_number=model.block_number,
            block_timestamp=model.block_timestamp,
            buyer=model.buyer,
            seller=model.seller,
            payment_token=model.payment_token,
            price=int(model.price),
            summary_tokens_sold=model.summary_tokens_sold,
            created_at=model.created_at,
        )


class SaleRepository:
    """Repository for sales (immutable once written)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, sale_id: str) -> SaleDTO | None:
        result = await self.session.execute(select(SaleModel).where(SaleModel.id == sale_id))
        model = result.scalar_one_or_none()
        return SaleDTO.from_model(model) if model else None

    async def exists(self, sale_id: str) -> bool:
        result = await self.session.execute(select(SaleModel.id).where(SaleModel.id == sale_id))
        return result.scalar_one_or_none() is not None

    async def insert_if_absent(self, dto: SaleDTO) -> bool:
        """Insert the sale unless it was already indexed.

        Returns:
            True if the sale was created by this call.
        """
        values = {
            "id": dto.id,
            "sale_type": dto.sale_type,
            "block_number": dto.block_number,
            "block_timestamp": dto.block_timestamp,
            "buyer": dto.buyer.lower(),
            "seller": dto.seller.lower(),
            "payment_token": dto.payment_token.lower(),
            "price": dto.price,
            "summary_tokens_sold": dto.summary_tokens_sold,
            "created_at": dto.created_at or datetime.now(UTC),
        }
        return await _insert_if_absent(self.session, SaleModel, values, index_elements=["id"])

    async def list_by_block_range(self, *, start_block: int, end_block: int) -> list[SaleDTO]:
        result = await self.session.execute(
            select(SaleModel)
            .where(SaleModel.block_number >= start_block, SaleModel.block_number <= end_block)
            .order_by(SaleModel.block_number.asc(), SaleModel.id.asc())
        )
        return [SaleDTO.from_model(m) for m in result.scalars().all()]

    async def count(self) -> int:
        result = await self.session.execute(select(sa.func.count()).select_from(SaleModel))
        return int(result.scalar_one())


@dataclass
class SaleAssetLinkDTO:
    """Data transfer object for the sale <=> asset lookup table."""

    id: str
    sale_id: str
    asset_id: str
    position: int = 0
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: SaleAssetLinkModel) -> SaleAssetLinkDTO:
        return cls(
            id=model.id,
            sale_id=model.sale_id,
            asset_id=model.asset_id,
            position=model.position,
            created_at=model.created_at,
        )


class SaleAssetLinkRepository:
    """Repository for sale <=> asset links."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert_if_absent(self, dto: SaleAssetLinkDTO) -> bool:
        values = {
            "id": dto.id,
            "sale_id": dto.sale_id,
            "asset_id": dto.asset_id,
            "position": dto.position,
            "created_at": dto.created_at or datetime.now(UTC),
        }
        return await _insert_if_absent(self.session, SaleAssetLinkModel, values, index_elements=["id"])

    async def list_for_sale(self, sale_id: str) -> list[SaleAssetLinkDTO]:
        result = await self.session.execute(
            select(SaleAssetLinkModel)
            .where(SaleAssetLinkModel.sale_id == sale_id)
            .order_by(SaleAssetLinkModel.position.asc())
        )
        return [SaleAssetLinkDTO.from_model(m) for m in result.scalars().all()]

    async def list_for_asset(self, asset_id: str) -> list[SaleAssetLinkDTO]:
        result = await self.session.execute(
            select(SaleAssetLinkModel)
            .where(SaleAssetLinkModel.asset_id == asset_id)
            .order_by(SaleAssetLinkModel.created_at.asc())
        )
        return [SaleAssetLinkDTO.from_model(m) for m in result.scalars().all()]

    async def count(self) -> int:
        result = await self.session.execute(select(sa.func.count()).select_from(SaleAssetLinkModel))
        return int(result.scalar_one())


@dataclass
class SettlementProcessingErrorDTO:
    transaction_hash: str
    stage: str
    error_type: str
    message: str
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: SettlementProcessingErrorModel) -> SettlementProcessingErrorDTO:
        return cls(
            transaction_hash=model.transaction_hash,
            stage=model.stage,
            error_type=model.error_type,
            message=model.message,
            created_at=model.created_at,
        )


class SettlementProcessingErrorRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(self, dto: SettlementProcessingErrorDTO) -> None:
        await self.session.execute(
            sa.insert(SettlementProcessingErrorModel),
            [
                {
                    "transaction_hash": dto.transaction_hash,
                    "stage": dto.stage,
                    "error_type": dto.error_type,
                    "message": dto.message,
                    "created_at": dto.created_at or datetime.now(UTC),
                }
            ],
        )
        await self.session.flush()

    async def list_for_transaction(self, transaction_hash: str) -> list[SettlementProcessingErrorDTO]:
        result = await self.session.execute(
            select(SettlementProcessingErrorModel)
            .where(SettlementProcessingErrorModel.transaction_hash == transaction_hash)
            .order_by(SettlementProcessingErrorModel.id.asc())
        )
        return [SettlementProcessingErrorDTO.from_model(m) for m in result.scalars().all()]
