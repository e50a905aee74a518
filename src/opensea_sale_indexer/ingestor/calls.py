"""Turning raw exchange transactions into `AtomicMatchCall` triggers.

The generic ABI decoder is only used here, at the trigger boundary, to split
the transaction input into the named `atomicMatch_` parameters. Everything
downstream works on the raw byte buffers.
"""

from __future__ import annotations

import logging
from typing import Any

from web3 import Web3
from web3.exceptions import Web3Exception

from opensea_sale_indexer.constants import ExchangeConstants, get_constants
from opensea_sale_indexer.ingestor.abi import ATOMIC_MATCH_FUNCTION, WYVERN_EXCHANGE_ABI
from opensea_sale_indexer.ingestor.chain import EthereumClient
from opensea_sale_indexer.ingestor.models import AtomicMatchCall, CallParamsError, parse_hex_bytes

logger = logging.getLogger(__name__)


class AtomicMatchCallDecoder:
    """Decodes `atomicMatch_` transaction input with the exchange ABI."""

    def __init__(self, constants: ExchangeConstants | None = None) -> None:
        self._constants = constants or get_constants()
        self._contract = Web3().eth.contract(abi=WYVERN_EXCHANGE_ABI)

    def decode_input(self, data: bytes) -> dict[str, Any]:
        """Return the named atomicMatch_ parameters of `data`.

        Raises:
            CallParamsError: If `data` is not an atomicMatch_ call.
        """
        try:
            function, params = self._contract.decode_function_input(data)
        except (ValueError, Web3Exception) as e:
            raise CallParamsError(f"Input is not a decodable exchange call: {e}") from e
        if function.fn_name != ATOMIC_MATCH_FUNCTION:
            raise CallParamsError(f"Expected {ATOMIC_MATCH_FUNCTION}, got {function.fn_name}")
        return dict(params)

    def from_transaction(self, tx: dict[str, Any], block: dict[str, Any]) -> AtomicMatchCall:
        """Build a trigger from a transaction sent directly to the exchange.

        Args:
            tx: Transaction fields (`hash`, `to`, `input`, `blockNumber`).
            block: Block fields (`number`, `timestamp`).

        Raises:
            CallParamsError: If the transaction is not an exchange atomicMatch_ call.
        """
        to_address = (tx.get("to") or "").lower()
        if to_address != self._constants.exchange_address:
            raise CallParamsError(f"Transaction targets {to_address or 'nothing'}, not the exchange")

        params = self.decode_input(parse_hex_bytes(tx["input"], field_name="input"))
        tx_hash = tx["hash"]
        tx_hash_hex = "0x" + bytes(tx_hash).hex() if isinstance(tx_hash, (bytes, bytearray)) else tx_hash

        return AtomicMatchCall.from_dict(
            {
                "transaction_hash": tx_hash_hex,
                "block_number": int(block["number"]),
                "block_timestamp": int(block["timestamp"]),
                "addrs": params["addrs"],
                "uints": params["uints"],
                "fee_methods_sides_kinds_how_to_calls": params["feeMethodsSidesKindsHowToCalls"],
                "calldata_buy": params["calldataBuy"],
                "calldata_sell": params["calldataSell"],
                "replacement_pattern_buy": params["replacementPatternBuy"],
                "replacement_pattern_sell": params["replacementPatternSell"],
                "static_extradata_buy": params["staticExtradataBuy"],
                "static_extradata_sell": params["staticExtradataSell"],
            }
        )


async def fetch_atomic_match_call(
    client: EthereumClient,
    tx_hash: str,
    *,
    decoder: AtomicMatchCallDecoder | None = None,
) -> AtomicMatchCall:
    """Fetch a settlement transaction and its block, and decode the trigger.

    Only top-level calls to the exchange are supported; settlements executed
    through another contract need a trace-based trigger source.
    """
    decoder = decoder or AtomicMatchCallDecoder()
    tx = await client.get_transaction(tx_hash)
    if tx.get("blockNumber") is None:
        raise CallParamsError(f"Transaction {tx_hash} is not mined yet")
    block = await client.get_block(int(tx["blockNumber"]))
    logger.debug("Fetched transaction %s (block %s)", tx_hash, block["number"])
    return decoder.from_transaction(tx, block)
