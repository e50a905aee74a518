"""Pytest configuration and fixtures."""

from collections.abc import Callable
from typing import Any

import pytest
from calldata import (
    BUYER,
    FEE_RECIPIENT,
    NFT_CONTRACT,
    SELLER,
    WETH,
    encode_atomicize,
    encode_transfer,
    transfer_from_mask,
)

from opensea_sale_indexer.constants import ExchangeConstants, get_constants
from opensea_sale_indexer.ingestor.models import AtomicMatchCall
from opensea_sale_indexer.storage.database import DatabaseManager


@pytest.fixture
def constants() -> ExchangeConstants:
    return get_constants()


@pytest.fixture
def make_call(constants: ExchangeConstants) -> Callable[..., AtomicMatchCall]:
    """Factory for realistic atomicMatch_ calls.

    Defaults describe a fixed-price single sale of token 5 on NFT_CONTRACT for
    100 wei, with the fee charged on the sell side.
    """

    def factory(**overrides: Any) -> AtomicMatchCall:
        target = overrides.pop("target", NFT_CONTRACT)
        buy_price = overrides.pop("buy_price", 100)
        sell_price = overrides.pop("sell_price", 100)
        fee_recipient = overrides.pop("sell_fee_recipient", FEE_RECIPIENT)
        payment_token = overrides.pop("payment_token", WETH)

        uints = [0] * 18
        uints[4] = buy_price
        uints[13] = sell_price
        for index, value in overrides.pop("uints", {}).items():
            uints[index] = value

        enums = [1, 0, 0, 0, 1, 1, 0, 0]
        for index, value in overrides.pop("enums", {}).items():
            enums[index] = value

        params: dict[str, Any] = {
            "transaction_hash": "0x" + "ab" * 32,
            "block_number": 14_000_000,
            "block_timestamp": 1_650_000_000,
            "addrs": (
                constants.exchange_address,
                BUYER,
                constants.null_address,
                constants.null_address,
                target,
                constants.null_address,
                payment_token,
                constants.exchange_address,
                SELLER,
                constants.null_address,
                fee_recipient,
                target,
                constants.null_address,
                payment_token,
            ),
            "uints": tuple(uints),
            "fee_methods_sides_kinds_how_to_calls": tuple(enums),
            "calldata_buy": encode_transfer(constants.null_address, BUYER, 5),
            "calldata_sell": encode_transfer(SELLER, constants.null_address, 5),
            "replacement_pattern_buy": transfer_from_mask(),
        }
        params.update(overrides)
        return AtomicMatchCall(**params)

    return factory


@pytest.fixture
def make_bundle_call(
    constants: ExchangeConstants, make_call: Callable[..., AtomicMatchCall]
) -> Callable[..., AtomicMatchCall]:
    """Factory for bundle sales carrying the given atomicize() entries."""

    def factory(entries: list[tuple[str, bytes]], **overrides: Any) -> AtomicMatchCall:
        calldata = encode_atomicize(entries)
        return make_call(
            target=constants.atomicizer_address,
            calldata_buy=calldata,
            calldata_sell=calldata,
            replacement_pattern_buy=bytes(len(calldata)),
            **overrides,
        )

    return factory


@pytest.fixture
async def db_manager(tmp_path):
    """A DatabaseManager over a fresh SQLite file with the schema created."""
    db = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'sales.db'}")
    await db.init_schema_async()
    yield db
    await db.dispose_async()
