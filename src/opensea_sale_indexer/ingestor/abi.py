"""Minimal Wyvern exchange ABI fragments."""

from __future__ import annotations

from typing import Any

ATOMIC_MATCH_FUNCTION = "atomicMatch_"
CALCULATE_FINAL_PRICE_FUNCTION = "calculateFinalPrice"


def _input(name: str, type_: str) -> dict[str, str]:
    return {"name": name, "type": type_}


WYVERN_EXCHANGE_ABI: list[dict[str, Any]] = [
    {
        "constant": False,
        "inputs": [
            _input("addrs", "address[14]"),
            _input("uints", "uint256[18]"),
            _input("feeMethodsSidesKindsHowToCalls", "uint8[8]"),
            _input("calldataBuy", "bytes"),
            _input("calldataSell", "bytes"),
            _input("replacementPatternBuy", "bytes"),
            _input("replacementPatternSell", "bytes"),
            _input("staticExtradataBuy", "bytes"),
            _input("staticExtradataSell", "bytes"),
            _input("vs", "uint8[2]"),
            _input("rssMetadata", "bytes32[5]"),
        ],
        "name": ATOMIC_MATCH_FUNCTION,
        "outputs": [],
        "payable": True,
        "stateMutability": "payable",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [
            _input("side", "uint8"),
            _input("saleKind", "uint8"),
            _input("basePrice", "uint256"),
            _input("extra", "uint256"),
            _input("listingTime", "uint256"),
            _input("expirationTime", "uint256"),
        ],
        "name": CALCULATE_FINAL_PRICE_FUNCTION,
        "outputs": [{"name": "", "type": "uint256"}],
        "payable": False,
        "stateMutability": "view",
        "type": "function",
    },
]
