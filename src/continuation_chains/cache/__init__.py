"""Derived chain-metadata cache.

Public surface
--------------
- ChainCache  — read-through cache cleared on every edge write
- CacheEntry  — cached per-session chain facts
- RootStats   — aggregate facts over one cached chain
"""
from __future__ import annotations

from continuation_chains.cache.chain_cache import CacheEntry, ChainCache, RootStats

__all__ = [
    "CacheEntry",
    "ChainCache",
    "RootStats",
]
