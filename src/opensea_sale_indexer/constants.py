"""Well-known Wyvern exchange addresses and selectors.

These values are fixed for the indexed deployment and are intentionally not
environment-configurable. Components receive the shared `ExchangeConstants`
instance instead of reaching for module globals.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

NULL_ADDRESS = "0x0000000000000000000000000000000000000000"

# Main OpenSea contract (Wyvern exchange); provides atomicMatch_.
WYVERN_EXCHANGE_ADDRESS = "0x7be8076f4ea4a4ad08075c2508e481d6c946d12b"

# Library used by OpenSea for bundle sales. Its atomicize() method receives the
# ABI-encoded transferFrom calls of every NFT contract involved in the sale.
WYVERN_ATOMICIZER_ADDRESS = "0xc99f70bfd82fb7c8f8191fdfbfb735606b15e5c5"

# transferFrom(address,address,uint256)
TRANSFER_FROM_SELECTOR = "0x23b872dd"

ASSET_KEY_SEPARATOR = "-"
SUMMARY_SEPARATOR = "::"
LINK_KEY_SEPARATOR = "<=>"


@dataclass(frozen=True)
class ExchangeConstants:
    """Immutable addresses and selectors shared by every component."""

    null_address: str = NULL_ADDRESS
    exchange_address: str = WYVERN_EXCHANGE_ADDRESS
    atomicizer_address: str = WYVERN_ATOMICIZER_ADDRESS
    transfer_from_selector: str = TRANSFER_FROM_SELECTOR

    @property
    def transfer_from_selector_bytes(self) -> bytes:
        return bytes.fromhex(self.transfer_from_selector.removeprefix("0x"))


@lru_cache(maxsize=1)
def get_constants() -> ExchangeConstants:
    """Return the process-wide constants instance."""
    return ExchangeConstants()


def asset_key(contract_address: str, token_id: str) -> str:
    """Build the composite asset id `contract-tokenId`."""
    return f"{contract_address.lower()}{ASSET_KEY_SEPARATOR}{token_id}"


def link_key(sale_id: str, asset_id: str) -> str:
    """Build the sale <=> asset lookup id."""
    return f"{sale_id}{LINK_KEY_SEPARATOR}{asset_id}"
