"""Tests for database session management."""

import pytest

from opensea_sale_indexer.storage.database import DatabaseManager, normalize_async_database_url
from opensea_sale_indexer.storage.repos import AssetDTO, AssetRepository


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("postgresql://u:p@localhost/db", "postgresql+asyncpg://u:p@localhost/db"),
        ("postgresql+asyncpg://u:p@localhost/db", "postgresql+asyncpg://u:p@localhost/db"),
        ("sqlite:///sales.db", "sqlite+aiosqlite:///sales.db"),
        ("sqlite+aiosqlite:///sales.db", "sqlite+aiosqlite:///sales.db"),
    ],
)
def test_normalize_async_database_url(url: str, expected: str) -> None:
    assert normalize_async_database_url(url) == expected


class TestDatabaseManager:
    """Tests for DatabaseManager."""

    @pytest.mark.asyncio
    async def test_session_commits_on_success(self, db_manager: DatabaseManager) -> None:
        async with db_manager.get_async_session() as session:
            await AssetRepository(session).get_or_create(AssetDTO(id="0xc-1", contract_address="0xc", token_id="1"))

        async with db_manager.get_async_session() as session:
            assert await AssetRepository(session).count() == 1

    @pytest.mark.asyncio
    async def test_session_rolls_back_on_error(self, db_manager: DatabaseManager) -> None:
        with pytest.raises(RuntimeError):
            async with db_manager.get_async_session() as session:
                await AssetRepository(session).get_or_create(
                    AssetDTO(id="0xc-1", contract_address="0xc", token_id="1")
                )
                raise RuntimeError("abort")

        async with db_manager.get_async_session() as session:
            assert await AssetRepository(session).count() == 0
