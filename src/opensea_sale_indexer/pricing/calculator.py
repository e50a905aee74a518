"""Settlement price computation.

Reproduces Wyvern's `SaleKindInterface.calculateFinalPrice` and the selection
rule of `WyvernExchange.calculateMatchPrice`. Arithmetic follows SafeMath:
anything that would revert on-chain raises here instead of wrapping.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

UINT256_MAX = 2**256 - 1


class PricingError(Exception):
    """Raised when a price cannot be computed the way the exchange would."""


class PriceOverflowError(PricingError):
    """Raised when an intermediate value leaves the uint256 range."""


class Side(IntEnum):
    """Order side (SaleKindInterface.Side)."""

    BUY = 0
    SELL = 1


class SaleKind(IntEnum):
    """Order pricing mode (SaleKindInterface.SaleKind)."""

    FIXED_PRICE = 0
    DUTCH_AUCTION = 1


@dataclass(frozen=True)
class OrderPricing:
    """The six order fields that determine its final price."""

    side: Side
    sale_kind: SaleKind
    base_price: int
    extra: int
    listing_time: int
    expiration_time: int


def _checked(value: int, what: str) -> int:
    if value < 0:
        raise PricingError(f"{what} underflows ({value})")
    if value > UINT256_MAX:
        raise PriceOverflowError(f"{what} overflows uint256")
    return value


def calculate_final_price(
    side: Side | int,
    sale_kind: SaleKind | int,
    base_price: int,
    extra: int,
    listing_time: int,
    expiration_time: int,
    *,
    now: int,
) -> int:
    """Compute an order's price at timestamp `now`.

    Fixed price orders always return `base_price`. Dutch auctions move
    linearly from `base_price` at `listing_time` by `extra` at
    `expiration_time`: sell orders decrease towards `base_price - extra`, buy
    orders increase towards `base_price + extra`. Elapsed time is clamped at
    the expiration time and the division floors, as in the contract.

    Raises:
        PricingError: For unknown enum values, an auction that has not started
            or has an empty/negative duration, or a negative final price.
        PriceOverflowError: If `extra * elapsed` or the final price exceeds uint256.
    """
    try:
        side = Side(side)
        sale_kind = SaleKind(sale_kind)
    except ValueError as e:
        raise PricingError(str(e)) from e

    if sale_kind is SaleKind.FIXED_PRICE:
        return base_price

    if expiration_time <= listing_time:
        raise PricingError(
            f"Dutch auction needs expiration_time > listing_time ({expiration_time} <= {listing_time})"
        )
    if now < listing_time:
        raise PricingError(f"Dutch auction evaluated before listing time ({now} < {listing_time})")

    elapsed = min(now, expiration_time) - listing_time
    duration = expiration_time - listing_time
    diff = _checked(extra * elapsed, "extra * elapsed") // duration

    if side is Side.SELL:
        # Sell-side: start price basePrice, end price basePrice - extra.
        return _checked(base_price - diff, "sell price")
    # Buy-side: start price basePrice, end price basePrice + extra.
    return _checked(base_price + diff, "buy price")


def calculate_order_price(order: OrderPricing, *, now: int) -> int:
    return calculate_final_price(
        order.side,
        order.sale_kind,
        order.base_price,
        order.extra,
        order.listing_time,
        order.expiration_time,
        now=now,
    )


def calculate_match_price(
    buy: OrderPricing,
    sell: OrderPricing,
    sell_fee_recipient: str,
    *,
    now: int,
    null_address: str,
) -> int:
    """Return the price a buy/sell match settles at.

    The side that pays the marketplace fee is authoritative: the sell price
    wins unless the sell order has no fee recipient (the null address).
    """
    sell_price = calculate_order_price(sell, now=now)
    buy_price = calculate_order_price(buy, now=now)
    return sell_price if sell_fee_recipient.lower() != null_address.lower() else buy_price
