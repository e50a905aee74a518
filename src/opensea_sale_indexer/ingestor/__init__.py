"""Trigger ingestion layer - atomicMatch_ call parameters and chain access."""

from opensea_sale_indexer.ingestor.calls import AtomicMatchCallDecoder, fetch_atomic_match_call
from opensea_sale_indexer.ingestor.chain import EthereumClient, EthereumClientError, RPCError
from opensea_sale_indexer.ingestor.models import AtomicMatchCall, CallParamsError

__all__ = [
    "AtomicMatchCall",
    "AtomicMatchCallDecoder",
    "CallParamsError",
    "EthereumClient",
    "EthereumClientError",
    "RPCError",
    "fetch_atomic_match_call",
]
