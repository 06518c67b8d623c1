"""
Stake balance fetchers.

This module provides a unified interface for resolving a peer's balance of
the oracle's reputation token from different backends.

Usage:
    from stake_oracle.src.fetchers import get_fetcher, get_available_fetchers

    # Get list of available fetchers
    available = get_available_fetchers()
    # ['erc20', 'indexer', 'static']

    # Create a fetcher instance
    fetcher = get_fetcher("indexer", endpoint="https://api.tap.trac.network")
    balance = await fetcher.fetch_balance("peer_whale_1", "TRAC")
"""

# Import base classes and utilities
from .base import (
    FETCHER_REGISTRY,
    BaseBalanceFetcher,
    FetcherConfigError,
    FetcherError,
    FetcherHTTPError,
    get_available_fetchers,
    get_fetcher,
    register_fetcher,
)

# Import all fetcher implementations to trigger registration
from .erc20 import ERC20BalanceFetcher
from .indexer import IndexerBalanceFetcher
from .static import StaticBalanceFetcher

__all__ = [
    # Base classes
    "BaseBalanceFetcher",
    "FetcherError",
    "FetcherConfigError",
    "FetcherHTTPError",
    # Registry functions
    "register_fetcher",
    "get_fetcher",
    "get_available_fetchers",
    "FETCHER_REGISTRY",
    # Fetcher implementations
    "ERC20BalanceFetcher",
    "IndexerBalanceFetcher",
    "StaticBalanceFetcher",
]
