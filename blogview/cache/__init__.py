"""
Content caching module with tiered TTL, request coalescing and endpoint fallback.
"""
from .core import CacheEntry, OperationCategory, StorageError, generate_cache_key
from .ttl_policies import TTL_CONFIG, build_ttl_config, get_ttl_for
from .backends import MemoryBackend, SQLiteBackend
from .store import CacheStore
from .coalescer import RequestCoalescer
from .orchestrator import FetchOrchestrator, Operation, build_orchestrator, get_orchestrator

__all__ = [
    # Core types
    "CacheEntry",
    "OperationCategory",
    "StorageError",
    "generate_cache_key",
    # TTL policies
    "TTL_CONFIG",
    "build_ttl_config",
    "get_ttl_for",
    # Storage
    "MemoryBackend",
    "SQLiteBackend",
    "CacheStore",
    # Coalescing
    "RequestCoalescer",
    # Orchestration
    "FetchOrchestrator",
    "Operation",
    "build_orchestrator",
    "get_orchestrator",
]
