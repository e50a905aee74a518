"""Command-line entry point.

Usage:
    python -m opensea_sale_indexer init-db
    python -m opensea_sale_indexer replay calls.jsonl
    python -m opensea_sale_indexer index-tx 0xabc... 0xdef...
    python -m opensea_sale_indexer decode-calldata 0x23b872dd... [--bundle]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from redis.asyncio import Redis

from opensea_sale_indexer.config import Settings, get_settings
from opensea_sale_indexer.constants import get_constants
from opensea_sale_indexer.decoder import DecodeError, decode_bundle, decode_transfer_token_id
from opensea_sale_indexer.handler import HandlerStats, SaleHandler, SaleHandlerError
from opensea_sale_indexer.ingestor import (
    AtomicMatchCall,
    AtomicMatchCallDecoder,
    CallParamsError,
    EthereumClient,
    EthereumClientError,
    fetch_atomic_match_call,
)
from opensea_sale_indexer.ingestor.models import parse_hex_bytes
from opensea_sale_indexer.pricing import ExchangePriceOracle
from opensea_sale_indexer.storage import DatabaseManager

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="opensea-sale-indexer",
        description="Index OpenSea (Wyvern) atomicMatch_ settlements as sales",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override LOG_LEVEL",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the database schema")

    replay = sub.add_parser("replay", help="Index atomicMatch_ calls from a JSON-lines file")
    replay.add_argument("path", type=Path, help="File with one call per line, in block order")
    replay.add_argument("--strict", action="store_true", default=None, help="Stop at the first failure")

    index_tx = sub.add_parser("index-tx", help="Fetch settlement transactions over RPC and index them")
    index_tx.add_argument("tx_hashes", nargs="+", metavar="HASH")
    index_tx.add_argument("--strict", action="store_true", default=None, help="Stop at the first failure")

    decode = sub.add_parser("decode-calldata", help="Decode merged transfer calldata without indexing")
    decode.add_argument("calldata", metavar="HEX")
    decode.add_argument("--bundle", action="store_true", help="Treat the calldata as an atomicize() call")
    decode.add_argument(
        "--no-validate-shape",
        dest="validate_shape",
        action="store_false",
        help="Skip the bundle array length checks",
    )
    return parser


def _iter_jsonl(path: Path) -> Iterator[tuple[int, dict[str, Any]]]:
    with path.open(encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            yield line_number, json.loads(line)


def _log_stats(stats: HandlerStats) -> None:
    logger.info(
        "Processed %d settlement(s): %d created, %d skipped, %d failed",
        stats.processed,
        stats.created,
        stats.skipped,
        stats.failed,
    )


def _create_client(settings: Settings, redis: Redis | None) -> EthereumClient:
    rpc_url = settings.ethereum.rpc_url
    if rpc_url is None:
        raise ValueError("ETHEREUM_RPC_URL is required to read from the chain")
    return EthereumClient(
        rpc_url,
        fallback_rpc_url=settings.ethereum.fallback_rpc_url,
        redis=redis,
        max_requests_per_second=settings.ethereum.max_requests_per_second,
    )


async def _init_db(settings: Settings) -> int:
    db = DatabaseManager(settings.database.url)
    try:
        await db.init_schema_async()
    finally:
        await db.dispose_async()
    return 0


async def _run_calls(settings: Settings, args: argparse.Namespace) -> int:
    """Shared driver for replay and index-tx."""
    strict = settings.indexer.strict if args.strict is None else args.strict
    needs_client = args.command == "index-tx" or settings.indexer.price_oracle_enabled
    constants = get_constants()

    db = DatabaseManager(settings.database.url)
    redis: Redis | None = None
    client: EthereumClient | None = None
    if needs_client:
        if settings.redis.url:
            redis = Redis.from_url(settings.redis.url)
        client = _create_client(settings, redis)

    oracle = None
    if settings.indexer.price_oracle_enabled and client is not None:
        oracle = ExchangePriceOracle(client, constants.exchange_address)

    handler = SaleHandler(
        db,
        constants=constants,
        validate_bundle_shape=settings.indexer.validate_bundle_shape,
        price_oracle=oracle,
        strict=strict,
    )
    invalid = 0
    try:
        if args.command == "replay":
            for line_number, payload in _iter_jsonl(args.path):
                try:
                    call = AtomicMatchCall.from_dict(payload)
                except CallParamsError as e:
                    if strict:
                        raise
                    logger.error("Skipping line %d of %s: %s", line_number, args.path, e)
                    invalid += 1
                    continue
                await handler.handle_atomic_match(call)
        else:
            if client is None:
                raise ValueError("index-tx needs an Ethereum client")
            decoder = AtomicMatchCallDecoder(constants)
            for tx_hash in args.tx_hashes:
                try:
                    call = await fetch_atomic_match_call(client, tx_hash, decoder=decoder)
                except (CallParamsError, EthereumClientError) as e:
                    if strict:
                        raise
                    logger.error("Skipping transaction %s: %s", tx_hash, e)
                    invalid += 1
                    continue
                await handler.handle_atomic_match(call)
    finally:
        _log_stats(handler.stats)
        if client is not None:
            await client.aclose()
        if redis is not None:
            await redis.aclose()
        await db.dispose_async()

    return 1 if handler.stats.failed or invalid else 0


def _decode_calldata(args: argparse.Namespace) -> int:
    data = parse_hex_bytes(args.calldata, field_name="calldata")
    if args.bundle:
        transfers = decode_bundle(
            data,
            transfer_selector=get_constants().transfer_from_selector_bytes,
            validate_shape=args.validate_shape,
        )
        result: Any = [{"contract": t.contract_address, "token_id": t.token_id} for t in transfers]
    else:
        result = {"token_id": decode_transfer_token_id(data)}
    print(json.dumps(result, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=args.log_level or settings.log_level,
        format=LOG_FORMAT,
    )
    logger.debug("Effective configuration: %s", settings.redacted_summary())

    try:
        settings.validate_requirements(command=args.command)
        if args.command == "decode-calldata":
            return _decode_calldata(args)
        if args.command == "init-db":
            return asyncio.run(_init_db(settings))
        return asyncio.run(_run_calls(settings, args))
    except (DecodeError, CallParamsError, SaleHandlerError, EthereumClientError, ValueError) as e:
        logger.error("%s failed: %s", args.command, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
