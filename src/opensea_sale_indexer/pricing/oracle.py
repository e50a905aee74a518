"""On-chain price cross-check through the exchange's calculateFinalPrice."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from opensea_sale_indexer.ingestor.abi import CALCULATE_FINAL_PRICE_FUNCTION, WYVERN_EXCHANGE_ABI
from opensea_sale_indexer.pricing.calculator import OrderPricing

if TYPE_CHECKING:
    from opensea_sale_indexer.ingestor.chain import EthereumClient

logger = logging.getLogger(__name__)


class ExchangePriceOracle:
    """Asks the exchange contract for an order's final price at a given block."""

    def __init__(self, client: EthereumClient, exchange_address: str) -> None:
        self._client = client
        self._exchange_address = exchange_address

    async def calculate_final_price(self, order: OrderPricing, *, block_number: int) -> int:
        """Return the contract's price for `order` as of `block_number`.

        Raises:
            RPCError: If the call fails.
        """
        price = await self._client.call_contract_function(
            contract_address=self._exchange_address,
            abi=WYVERN_EXCHANGE_ABI,
            function_name=CALCULATE_FINAL_PRICE_FUNCTION,
            args=(
                int(order.side),
                int(order.sale_kind),
                order.base_price,
                order.extra,
                order.listing_time,
                order.expiration_time,
            ),
            block_identifier=block_number,
        )
        logger.debug("Oracle price at block %d: %s", block_number, price)
        return int(price)

    async def calculate_match_price(
        self,
        buy: OrderPricing,
        sell: OrderPricing,
        sell_fee_recipient: str,
        *,
        block_number: int,
        null_address: str,
    ) -> int:
        """Same selection rule as the local match price, priced by the contract."""
        if sell_fee_recipient.lower() != null_address.lower():
            return await self.calculate_final_price(sell, block_number=block_number)
        return await self.calculate_final_price(buy, block_number=block_number)
