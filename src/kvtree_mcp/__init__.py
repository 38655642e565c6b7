"""Hierarchical tree storage on top of a flat key-value store."""

__version__ = "0.1.0"

from .client import CloudflareKVBackend, KVTreeStorage, MemoryKVBackend, NodeStore, RetryExecutor
from .config import CloudflareKVConfiguration, ServerConfig, TreeConfig
from .models import (
    InvalidOperationError,
    KVTreeError,
    NodeAlreadyExistsError,
    NodeNotFoundError,
    NodeSpec,
    ParentMissingError,
    RetryExhaustedError,
    TreeNode,
    TreeOperationError,
    TreeStats,
)
from .path_codec import EscapeMethod, PathCodec

__all__ = [
    "CloudflareKVBackend",
    "CloudflareKVConfiguration",
    "EscapeMethod",
    "InvalidOperationError",
    "KVTreeError",
    "KVTreeStorage",
    "MemoryKVBackend",
    "NodeAlreadyExistsError",
    "NodeNotFoundError",
    "NodeSpec",
    "NodeStore",
    "ParentMissingError",
    "PathCodec",
    "RetryExecutor",
    "RetryExhaustedError",
    "ServerConfig",
    "TreeConfig",
    "TreeNode",
    "TreeOperationError",
    "TreeStats",
]
