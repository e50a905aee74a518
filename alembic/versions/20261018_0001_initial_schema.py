"""Initial schema: assets, sales, sale_asset_links, settlement_processing_errors.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

from opensea_sale_indexer.storage.types import UTCDateTime, Uint256

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "assets",
        sa.Column("id", sa.String(128), nullable=False),
        sa.Column("contract_address", sa.String(42), nullable=False),
        sa.Column("token_id", sa.String(78), nullable=False),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_assets_contract", "assets", ["contract_address"])

    op.create_table(
        "sales",
        sa.Column("id", sa.String(66), nullable=False),
        sa.Column("sale_type", sa.String(8), nullable=False),
        sa.Column("block_number", sa.BigInteger(), nullable=False),
        sa.Column("block_timestamp", UTCDateTime(), nullable=False),
        sa.Column("buyer", sa.String(42), nullable=False),
        sa.Column("seller", sa.String(42), nullable=False),
        sa.Column("payment_token", sa.String(42), nullable=False),
        sa.Column("price", Uint256(), nullable=False),
        sa.Column("summary_tokens_sold", sa.Text(), nullable=False),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_sales_block_number", "sales", ["block_number"])
    op.create_index("idx_sales_buyer", "sales", ["buyer"])
    op.create_index("idx_sales_seller", "sales", ["seller"])

    op.create_table(
        "sale_asset_links",
        sa.Column("id", sa.String(200), nullable=False),
        sa.Column("sale_id", sa.String(66), nullable=False),
        sa.Column("asset_id", sa.String(128), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_sale_asset_links_sale", "sale_asset_links", ["sale_id"])
    op.create_index("idx_sale_asset_links_asset", "sale_asset_links", ["asset_id"])

    op.create_table(
        "settlement_processing_errors",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("transaction_hash", sa.String(66), nullable=False),
        sa.Column("stage", sa.String(40), nullable=False),
        sa.Column("error_type", sa.String(80), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_settlement_processing_errors_tx", "settlement_processing_errors", ["transaction_hash"]
    )


def downgrade() -> None:
    op.drop_index("idx_settlement_processing_errors_tx", table_name="settlement_processing_errors")
    op.drop_table("settlement_processing_errors")
    op.drop_index("idx_sale_asset_links_asset", table_name="sale_asset_links")
    op.drop_index("idx_sale_asset_links_sale", table_name="sale_asset_links")
    op.drop_table("sale_asset_links")
    op.drop_index("idx_sales_seller", table_name="sales")
    op.drop_index("idx_sales_buyer", table_name="sales")
    op.drop_index("idx_sales_block_number", table_name="sales")
    op.drop_table("sales")
    op.drop_index("idx_assets_contract", table_name="assets")
    op.drop_table("assets")
