"""Caching Implementations.

Provides the namespaced TTL/LRU response cache (memory tier plus an optional
diskcache-backed persistent tier) and the persistent workspace index used for
local name-to-id resolution.
Bounded Context: Cache Management
"""
