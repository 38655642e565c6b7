"""KV tree storage client."""

from .keys import KeyDeriver, deserialize_value, serialize_value
from .kv_backend import CloudflareKVBackend, KVBackend, MemoryKVBackend
from .retry import RetryExecutor, is_retryable_error
from .tree_client import KVTreeStorage
from .tree_core import NodeStore

__all__ = [
    "CloudflareKVBackend",
    "KVBackend",
    "KVTreeStorage",
    "KeyDeriver",
    "MemoryKVBackend",
    "NodeStore",
    "RetryExecutor",
    "deserialize_value",
    "is_retryable_error",
    "serialize_value",
]
