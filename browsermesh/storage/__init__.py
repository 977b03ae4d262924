"""
Storage module: session-owned artifact storage.
"""

from browsermesh.storage.resources import (
    ResourceEntry,
    ResourceBackend,
    InMemoryResourceBackend,
    RedisResourceBackend,
    ResourceStore,
)

__all__ = [
    "ResourceEntry",
    "ResourceBackend",
    "InMemoryResourceBackend",
    "RedisResourceBackend",
    "ResourceStore",
]
