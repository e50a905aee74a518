"""Ethereum RPC client with rate limiting, retries and caching.

This module provides the client used to fetch settlement transactions and to
perform read-only exchange calls, with:
- Redis caching of immutable payloads (transactions, blocks)
- Retry logic with exponential backoff
- Rate limiting to respect provider limits
- Failover to secondary RPC URL
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, cast

from hexbytes import HexBytes
from redis.asyncio import Redis
from web3 import AsyncWeb3
from web3.exceptions import Web3Exception
from web3.providers import AsyncHTTPProvider

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_CACHE_TTL_SECONDS = 86_400  # transactions and blocks never change once final
DEFAULT_MAX_REQUESTS_PER_SECOND = 25
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0


def _json_default(value: object) -> object:
    """Serialize Web3 RPC objects that stdlib json can't encode."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _normalize_hash(tx_hash: str | bytes) -> str:
    if isinstance(tx_hash, (bytes, bytearray)):
        return "0x" + bytes(tx_hash).hex()
    value = tx_hash.lower()
    return value if value.startswith("0x") else "0x" + value


class EthereumClientError(Exception):
    """Base exception for Ethereum client errors."""


class RPCError(EthereumClientError):
    """Raised when RPC call fails."""


@dataclass
class RateLimiter:
    """Token bucket rate limiter."""

    max_tokens: float
    refill_rate: float  # tokens per second
    tokens: float
    last_refill: float

    @classmethod
    def create(cls, max_requests_per_second: float) -> "RateLimiter":
        """Create a rate limiter with specified max requests per second."""
        return cls(
            max_tokens=max_requests_per_second,
            refill_rate=max_requests_per_second,
            tokens=max_requests_per_second,
            last_refill=time.monotonic(),
        )

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    async def acquire(self, tokens: float = 1.0) -> None:
        """Acquire tokens, waiting if necessary."""
        while True:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return
            wait_time = (tokens - self.tokens) / self.refill_rate
            await asyncio.sleep(wait_time)


class EthereumClient:
    """Ethereum mainnet client with caching and rate limiting.

    Example:
        ```python
        client = EthereumClient(
            rpc_url="https://eth.llamarpc.com",
            fallback_rpc_url="https://ethereum-rpc.publicnode.com",
        )
        tx = await client.get_transaction("0x...")
        block = await client.get_block(tx["blockNumber"])
        ```
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        fallback_rpc_url: str | None = None,
        redis: Redis | None = None,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        max_requests_per_second: float = DEFAULT_MAX_REQUESTS_PER_SECOND,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
    ) -> None:
        """Initialize the Ethereum client.

        Args:
            rpc_url: Primary Ethereum RPC endpoint URL.
            fallback_rpc_url: Optional fallback RPC URL for failover.
            redis: Optional Redis client for caching.
            cache_ttl_seconds: Cache TTL in seconds.
            max_requests_per_second: Rate limit for RPC calls.
            max_retries: Maximum retry attempts on failure.
            retry_delay_seconds: Initial delay between retries.
        """
        self._rpc_url = rpc_url
        self._fallback_rpc_url = fallback_rpc_url
        self._redis = redis
        self._cache_ttl = cache_ttl_seconds
        self._max_retries = max_retries
        self._retry_delay = retry_delay_seconds

        self._w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._w3_fallback: AsyncWeb3[AsyncHTTPProvider] | None = None
        if fallback_rpc_url:
            self._w3_fallback = AsyncWeb3(AsyncHTTPProvider(fallback_rpc_url))

        self._rate_limiter = RateLimiter.create(max_requests_per_second)

        # Track primary RPC health
        self._primary_healthy = True
        self._last_primary_check = 0.0
        self._primary_recovery_interval = 60.0

        self._cache_prefix = "ethereum:"

    async def _get_cached(self, key: str) -> str | None:
        if not self._redis:
            return None
        try:
            value = await self._redis.get(key)
            if isinstance(value, bytes):
                return value.decode()
            return str(value) if value is not None else None
        except Exception as e:
            logger.warning("Cache get failed: %s", e)
            return None

    async def _set_cached(self, key: str, value: str, ttl: int | None = None) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, value, ex=ttl or self._cache_ttl)
        except Exception as e:
            logger.warning("Cache set failed: %s", e)

    def _should_try_primary(self) -> bool:
        if self._primary_healthy:
            return True
        now = time.monotonic()
        if now - self._last_primary_check > self._primary_recovery_interval:
            self._last_primary_check = now
            return True
        return False

    def _active_web3(self) -> AsyncWeb3[AsyncHTTPProvider]:
        if self._primary_healthy or self._w3_fallback is None:
            return self._w3
        return self._w3_fallback

    async def _execute_with_retry(
        self,
        func_name: str,
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Execute an RPC call with retry and failover logic.

        Args:
            func_name: Name of the web3.eth method to call.
            *args: Positional arguments for the method.
            **kwargs: Keyword arguments for the method.

        Returns:
            Result from the RPC call.

        Raises:
            RPCError: If all retries and failover fail.
        """
        await self._rate_limiter.acquire()

        last_error: Exception | None = None
        delay = self._retry_delay

        if self._should_try_primary():
            for attempt in range(self._max_retries):
                try:
                    method = getattr(self._w3.eth, func_name)
                    result = await method(*args, **kwargs)
                    self._primary_healthy = True
                    return result
                except Web3Exception as e:
                    last_error = e
                    logger.warning(
                        "Primary RPC %s failed (attempt %d/%d): %s",
                        func_name,
                        attempt + 1,
                        self._max_retries,
                        e,
                    )
                    if attempt < self._max_retries - 1:
                        await asyncio.sleep(delay)
                        delay *= 2  # Exponential backoff

            self._primary_healthy = False
            self._last_primary_check = time.monotonic()

        if self._w3_fallback:
            delay = self._retry_delay
            for attempt in range(self._max_retries):
                try:
                    method = getattr(self._w3_fallback.eth, func_name)
                    result = await method(*args, **kwargs)
                    logger.info("Fallback RPC succeeded for %s", func_name)
                    return result
                except Web3Exception as e:
                    last_error = e
                    logger.warning(
                        "Fallback RPC %s failed (attempt %d/%d): %s",
                        func_name,
                        attempt + 1,
                        self._max_retries,
                        e,
                    )
                    if attempt < self._max_retries - 1:
                        await asyncio.sleep(delay)
                        delay *= 2

        raise RPCError(f"RPC call {func_name} failed after all retries: {last_error}")

    async def get_transaction(self, tx_hash: str | bytes) -> dict[str, Any]:
        """Get the fields of a transaction needed for call decoding.

        Returns a dict with `hash`, `from`, `to`, `input` (`HexBytes`) and
        `blockNumber`.
        """
        normalized = _normalize_hash(tx_hash)
        cache_key = f"{self._cache_prefix}tx:{normalized}"

        cached = await self._get_cached(cache_key)
        if cached is not None:
            payload = cast(dict[str, Any], json.loads(cached))
            payload["hash"] = HexBytes(payload["hash"])
            payload["input"] = HexBytes(payload["input"])
            return payload

        tx = await self._execute_with_retry("get_transaction", normalized)
        tx_dict = {
            "hash": HexBytes(tx["hash"]),
            "from": tx["from"],
            "to": tx.get("to"),
            "input": HexBytes(tx["input"]),
            "blockNumber": tx.get("blockNumber"),
        }

        # Pending transactions have no block yet; only cache mined ones.
        if tx_dict["blockNumber"] is not None:
            await self._set_cached(cache_key, json.dumps(tx_dict, default=_json_default))
        return tx_dict

    async def get_block(self, block_number: int) -> dict[str, Any]:
        """Get block header by number (without transactions)."""
        cache_key = f"{self._cache_prefix}block:{block_number}"

        cached = await self._get_cached(cache_key)
        if cached is not None:
            return cast(dict[str, Any], json.loads(cached))

        block = await self._execute_with_retry("get_block", block_number)

        block_dict = {
            "number": int(block["number"]),
            "timestamp": int(block["timestamp"]),
        }
        await self._set_cached(cache_key, json.dumps(block_dict))
        return block_dict

    async def call_contract_function(
        self,
        *,
        contract_address: str,
        abi: list[dict[str, Any]],
        function_name: str,
        args: tuple[Any, ...],
        block_identifier: int | str = "latest",
    ) -> Any:
        """Perform a read-only contract call (`eth_call`)."""
        await self._rate_limiter.acquire()
        try:
            w3 = self._active_web3()
            contract = w3.eth.contract(
                address=AsyncWeb3.to_checksum_address(contract_address),
                abi=abi,
            )
            function = contract.get_function_by_name(function_name)
            # web3's AsyncContractFunction supports block_identifier for historical state
            return await function(*args).call(block_identifier=block_identifier)
        except Web3Exception as e:
            raise RPCError(f"Contract call {function_name} failed: {e}") from e

    async def aclose(self) -> None:
        """Close async HTTP provider sessions to avoid leaked aiohttp sessions."""
        providers = [self._w3.provider]
        if self._w3_fallback is not None:
            providers.append(self._w3_fallback.provider)

        for provider in providers:
            disconnect = getattr(provider, "disconnect", None)
            if not callable(disconnect):
                continue
            try:
                result = disconnect()
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning("Failed to close RPC provider session: %s", e)
