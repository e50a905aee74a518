"""Pricing layer - Wyvern settlement price replication."""

from opensea_sale_indexer.pricing.calculator import (
    UINT256_MAX,
    OrderPricing,
    PriceOverflowError,
    PricingError,
    SaleKind,
    Side,
    calculate_final_price,
    calculate_match_price,
    calculate_order_price,
)
from opensea_sale_indexer.pricing.oracle import ExchangePriceOracle

__all__ = [
    "UINT256_MAX",
    "ExchangePriceOracle",
    "OrderPricing",
    "PriceOverflowError",
    "PricingError",
    "SaleKind",
    "Side",
    "calculate_final_price",
    "calculate_match_price",
    "calculate_order_price",
]
