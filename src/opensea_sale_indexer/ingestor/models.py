"""Data models for atomicMatch_ settlement calls."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from opensea_sale_indexer.pricing.calculator import OrderPricing, PricingError, SaleKind, Side

# Positions inside the flattened order arrays of atomicMatch_.
# addrs: [exchange, maker, taker, feeRecipient, target, staticTarget, paymentToken] x (buy, sell)
ADDR_BUYER = 1  # buy.maker
ADDR_PAYMENT_TOKEN = 6  # buy.paymentToken
ADDR_SELLER = 8  # sell.maker
ADDR_SELL_FEE_RECIPIENT = 10  # sell.feeRecipient
ADDR_SELL_TARGET = 11  # sell.target

# uints: [makerRelayerFee, takerRelayerFee, makerProtocolFee, takerProtocolFee,
#         basePrice, extra, listingTime, expirationTime, salt] x (buy, sell)
UINT_BUY_BASE_PRICE = 4
UINT_SELL_BASE_PRICE = 13

# feeMethodsSidesKindsHowToCalls: [feeMethod, side, saleKind, howToCall] x (buy, sell)
ENUM_BUY_SIDE = 1
ENUM_BUY_SALE_KIND = 2
ENUM_SELL_SIDE = 5
ENUM_SELL_SALE_KIND = 6

MIN_ADDRS = 14
MIN_UINTS = 18
MIN_ENUMS = 8


class CallParamsError(ValueError):
    """Raised when settlement call parameters are missing or malformed."""


def parse_hex_bytes(value: Any, *, field_name: str) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        text = value[2:] if value.startswith(("0x", "0X")) else value
        try:
            return bytes.fromhex(text)
        except ValueError as e:
            raise CallParamsError(f"{field_name} is not valid hex: {e}") from e
    raise CallParamsError(f"{field_name} must be bytes or a hex string, got {type(value).__name__}")


def parse_uint(value: Any, *, field_name: str) -> int:
    if isinstance(value, bool):
        raise CallParamsError(f"{field_name} must be an integer, got bool")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        try:
            result = int(value, 16) if value.startswith(("0x", "0X")) else int(value)
        except ValueError as e:
            raise CallParamsError(f"{field_name} is not an integer: {value!r}") from e
    else:
        raise CallParamsError(f"{field_name} must be an integer, got {type(value).__name__}")
    if result < 0:
        raise CallParamsError(f"{field_name} must be unsigned, got {result}")
    return result


def normalize_address(value: Any, *, field_name: str) -> str:
    if isinstance(value, str):
        text = value.lower()
        if not text.startswith("0x"):
            text = "0x" + text
    else:
        text = "0x" + parse_hex_bytes(value, field_name=field_name).hex()
    if len(text) != 42:
        raise CallParamsError(f"{field_name} is not a 20-byte address: {value!r}")
    return text


@dataclass(frozen=True)
class AtomicMatchCall:
    """Inputs of one `atomicMatch_` invocation plus its transaction context."""

    transaction_hash: str
    block_number: int
    block_timestamp: int
    addrs: tuple[str, ...]
    uints: tuple[int, ...]
    fee_methods_sides_kinds_how_to_calls: tuple[int, ...]
    calldata_buy: bytes
    calldata_sell: bytes
    replacement_pattern_buy: bytes
    replacement_pattern_sell: bytes = b""
    static_extradata_buy: bytes = b""
    static_extradata_sell: bytes = b""

    def __post_init__(self) -> None:
        if len(self.addrs) < MIN_ADDRS:
            raise CallParamsError(f"addrs needs {MIN_ADDRS} entries, got {len(self.addrs)}")
        if len(self.uints) < MIN_UINTS:
            raise CallParamsError(f"uints needs {MIN_UINTS} entries, got {len(self.uints)}")
        if len(self.fee_methods_sides_kinds_how_to_calls) < MIN_ENUMS:
            raise CallParamsError(
                f"feeMethodsSidesKindsHowToCalls needs {MIN_ENUMS} entries, "
                f"got {len(self.fee_methods_sides_kinds_how_to_calls)}"
            )

    @property
    def buyer(self) -> str:
        return self.addrs[ADDR_BUYER]

    @property
    def seller(self) -> str:
        return self.addrs[ADDR_SELLER]

    @property
    def payment_token(self) -> str:
        return self.addrs[ADDR_PAYMENT_TOKEN]

    @property
    def sell_fee_recipient(self) -> str:
        return self.addrs[ADDR_SELL_FEE_RECIPIENT]

    @property
    def target(self) -> str:
        """Sell order target: the NFT contract, or the atomicizer for bundles."""
        return self.addrs[ADDR_SELL_TARGET]

    def _order_pricing(self, side_index: int, kind_index: int, base_index: int) -> OrderPricing:
        enums = self.fee_methods_sides_kinds_how_to_calls
        try:
            side = Side(enums[side_index])
            sale_kind = SaleKind(enums[kind_index])
        except ValueError as e:
            raise PricingError(f"Unsupported order enum value: {e}") from e
        return OrderPricing(
            side=side,
            sale_kind=sale_kind,
            base_price=self.uints[base_index],
            extra=self.uints[base_index + 1],
            listing_time=self.uints[base_index + 2],
            expiration_time=self.uints[base_index + 3],
        )

    def buy_pricing(self) -> OrderPricing:
        return self._order_pricing(ENUM_BUY_SIDE, ENUM_BUY_SALE_KIND, UINT_BUY_BASE_PRICE)

    def sell_pricing(self) -> OrderPricing:
        return self._order_pricing(ENUM_SELL_SIDE, ENUM_SELL_SALE_KIND, UINT_SELL_BASE_PRICE)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AtomicMatchCall:
        """Create a call from a JSON-style dictionary.

        Accepts both snake_case keys and the contract's camelCase input names.
        Byte fields are `0x` hex strings; integers are ints, decimal strings or
        `0x` hex strings.

        Raises:
            CallParamsError: If a required field is missing or malformed.
        """

        def pick(*names: str, required: bool = True) -> Any:
            for name in names:
                if name in data:
                    return data[name]
            if required:
                raise CallParamsError(f"Missing field {names[0]!r}")
            return None

        def pick_bytes(*names: str) -> bytes:
            value = pick(*names, required=False)
            return parse_hex_bytes(value, field_name=names[0]) if value is not None else b""

        enums_raw = pick("fee_methods_sides_kinds_how_to_calls", "feeMethodsSidesKindsHowToCalls")
        return cls(
            transaction_hash=pick("transaction_hash", "transactionHash", "hash").lower(),
            block_number=parse_uint(pick("block_number", "blockNumber"), field_name="block_number"),
            block_timestamp=parse_uint(
                pick("block_timestamp", "blockTimestamp", "timestamp"), field_name="block_timestamp"
            ),
            addrs=tuple(
                normalize_address(a, field_name=f"addrs[{i}]") for i, a in enumerate(pick("addrs"))
            ),
            uints=tuple(parse_uint(u, field_name=f"uints[{i}]") for i, u in enumerate(pick("uints"))),
            fee_methods_sides_kinds_how_to_calls=tuple(
                parse_uint(e, field_name=f"feeMethodsSidesKindsHowToCalls[{i}]")
                for i, e in enumerate(enums_raw)
            ),
            calldata_buy=parse_hex_bytes(pick("calldata_buy", "calldataBuy"), field_name="calldata_buy"),
            calldata_sell=parse_hex_bytes(pick("calldata_sell", "calldataSell"), field_name="calldata_sell"),
            replacement_pattern_buy=parse_hex_bytes(
                pick("replacement_pattern_buy", "replacementPatternBuy"),
                field_name="replacement_pattern_buy",
            ),
            replacement_pattern_sell=pick_bytes("replacement_pattern_sell", "replacementPatternSell"),
            static_extradata_buy=pick_bytes("static_extradata_buy", "staticExtradataBuy"),
            static_extradata_sell=pick_bytes("static_extradata_sell", "staticExtradataSell"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON shape accepted by `from_dict`."""
        return {
            "transaction_hash": self.transaction_hash,
            "block_number": self.block_number,
            "block_timestamp": self.block_timestamp,
            "addrs": list(self.addrs),
            "uints": [str(u) for u in self.uints],
            "fee_methods_sides_kinds_how_to_calls": list(self.fee_methods_sides_kinds_how_to_calls),
            "calldata_buy": "0x" + self.calldata_buy.hex(),
            "calldata_sell": "0x" + self.calldata_sell.hex(),
            "replacement_pattern_buy": "0x" + self.replacement_pattern_buy.hex(),
            "replacement_pattern_sell": "0x" + self.replacement_pattern_sell.hex(),
            "static_extradata_buy": "0x" + self.static_extradata_buy.hex(),
            "static_extradata_sell": "0x" + self.static_extradata_sell.hex(),
        }
