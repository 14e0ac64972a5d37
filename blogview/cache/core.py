"""
Core cache data structures.
"""
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class OperationCategory(Enum):
    """Categories of content data with different caching lifetimes."""
    IMAGE = "image"                     # 48 hours
    CATEGORIES = "categories"           # 12 hours
    POST_DETAILS = "post_details"       # 6 hours
    DEFAULT = "default"                 # 1 hour
    FEATURED_POSTS = "featured_posts"   # 30 minutes
    RECENT_POSTS = "recent_posts"       # 15 minutes
    SEARCH = "search"                   # 5 minutes
    LIVE_SCORES = "live_scores"         # 30 seconds


class StorageError(Exception):
    """Raised by a storage backend when a read or write cannot be completed."""


@dataclass
class CacheEntry:
    """
    A cached value with its storage and expiry timestamps (epoch seconds).
    """
    value: Any
    stored_at: float
    expires_at: float

    def is_valid(self, now: float) -> bool:
        """Check if the entry can still be served."""
        return now < self.expires_at

    def age_seconds(self, now: float) -> float:
        """Seconds since the entry was stored."""
        return max(0.0, now - self.stored_at)

    def to_record(self) -> Dict[str, Any]:
        """Convert to a JSON-serialisable record for durable storage."""
        return {
            "data": self.value,
            "timestamp": self.stored_at,
            "expiry": self.expires_at,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "CacheEntry":
        return cls(
            value=record.get("data"),
            stored_at=float(record.get("timestamp", 0)),
            expires_at=float(record.get("expiry", 0)),
        )


# Variables that never take part in a cache key
IGNORED_KEY_VARIABLES = frozenset({"_timestamp"})


def generate_cache_key(operation: str, variables: Optional[Dict[str, Any]] = None) -> str:
    """
    Generate a deterministic key from an operation name and its variables.

    Variables are sorted by name and values are JSON-encoded with sorted keys,
    so equivalent calls collide regardless of argument order.

    Examples:
        generate_cache_key("categories")            -> "categories"
        generate_cache_key("posts", {"limit": 12})  -> "posts:limit=12"
        generate_cache_key("post", {"slug": "a"})   -> 'post:slug="a"'
    """
    variables = variables or {}
    parts = [
        f"{name}={json.dumps(value, sort_keys=True, separators=(',', ':'), default=str)}"
        for name, value in sorted(variables.items())
        if value is not None and name not in IGNORED_KEY_VARIABLES
    ]
    if not parts:
        return operation
    return f"{operation}:{'&'.join(parts)}"
