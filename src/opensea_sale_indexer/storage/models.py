"""SQLAlchemy models for persistent storage.

This module defines the database schema for storing OpenSea sales, the NFTs
they transferred, and the lookup table linking both.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import BigInteger, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from opensea_sale_indexer.storage.types import UTCDateTime, Uint256


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class AssetModel(Base):
    """An NFT, identified by `contract-tokenId`. Never updated once created."""

    __tablename__ = "assets"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    contract_address: Mapped[str] = mapped_column(String(42), nullable=False)
    # uint256 token ids need up to 78 decimal digits.
    token_id: Mapped[str] = mapped_column(String(78), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (Index("idx_assets_contract", "contract_address"),)


class SaleModel(Base):
    """One OpenSea sale per settlement transaction (immutable)."""

    __tablename__ = "sales"

    id: Mapped[str] = mapped_column(String(66), primary_key=True)  # tx hash
    sale_type: Mapped[str] = mapped_column(String(8), nullable=False)  # Single/Bundle
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    block_timestamp: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    buyer: Mapped[str] = mapped_column(String(42), nullable=False)
    seller: Mapped[str] = mapped_column(String(42), nullable=False)
    payment_token: Mapped[str] = mapped_column(String(42), nullable=False)
    # Raw price in the payment token's smallest unit (uint256).
    price: Mapped[int] = mapped_column(Uint256(), nullable=False)
    summary_tokens_sold: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_sales_block_number", "block_number"),
        Index("idx_sales_buyer", "buyer"),
        Index("idx_sales_seller", "seller"),
    )


class SaleAssetLinkModel(Base):
    """Many-to-many lookup between sales and assets (`saleId<=>assetId`)."""

    __tablename__ = "sale_asset_links"

    id: Mapped[str] = mapped_column(String(200), primary_key=True)
    sale_id: Mapped[str] = mapped_column(String(66), nullable=False)
    asset_id: Mapped[str] = mapped_column(String(128), nullable=False)
    # Position of the asset inside the sale, in discovery order.
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_sale_asset_links_sale", "sale_id"),
        Index("idx_sale_asset_links_asset", "asset_id"),
    )


class SettlementProcessingErrorModel(Base):
    """Per-transaction processing errors (strict, non-silent failures)."""

    __tablename__ = "settlement_processing_errors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    stage: Mapped[str] = mapped_column(String(40), nullable=False)
    error_type: Mapped[str] = mapped_column(String(80), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (Index("idx_settlement_processing_errors_tx", "transaction_hash"),)
