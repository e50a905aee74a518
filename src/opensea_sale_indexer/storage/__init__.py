"""Storage layer - Database schemas and repositories."""

from opensea_sale_indexer.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from opensea_sale_indexer.storage.models import (
    AssetModel,
    Base,
    SaleAssetLinkModel,
    SaleModel,
    SettlementProcessingErrorModel,
)
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

__all__ = [
    "AssetDTO",
    "AssetModel",
    "AssetRepository",
    "Base",
    "DatabaseManager",
    "SaleAssetLinkDTO",
    "SaleAssetLinkModel",
    "SaleAssetLinkRepository",
    "SaleDTO",
    "SaleModel",
    "SaleRepository",
    "SettlementProcessingErrorDTO",
    "SettlementProcessingErrorModel",
    "SettlementProcessingErrorRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
