"""Data models and exceptions for KV tree storage."""

from typing import Any

from pydantic import BaseModel, Field, computed_field


# Exceptions


class KVTreeError(Exception):
    """Base exception for tree storage errors."""


class NodeNotFoundError(KVTreeError):
    """Raised when a node's value or children record is absent."""

    def __init__(self, path: list[str] | None = None, message: str | None = None):
        self.path = list(path) if path is not None else None
        if message is None:
            message = f"Node does not exist: {format_path(self.path or [])}"
        super().__init__(message)


class NodeAlreadyExistsError(KVTreeError):
    """Raised when re-creating the root or moving onto an occupied path."""


class InvalidOperationError(KVTreeError):
    """Raised for operations the root node does not support (delete, move)."""


class ParentMissingError(KVTreeError):
    """Raised when creating a node whose parent does not exist."""

    def __init__(self, parent_path: list[str]):
        self.parent_path = list(parent_path)
        super().__init__(f"Parent node does not exist: {format_path(self.parent_path)}")


class RetryExhaustedError(KVTreeError):
    """Raised when a retryable operation still fails after the last attempt."""

    def __init__(self, context: str, attempts: int, last_error: BaseException):
        self.context = context
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{context} failed after {attempts} attempts: {last_error}")


class TreeOperationError(KVTreeError):
    """Raised when a multi-step tree operation fails partway through.

    The tree may be left in a partial state; nothing is rolled back except
    the best-effort cleanup a move performs on its partial copy. If that
    cleanup itself failed, the failure is kept on ``cleanup_error``.
    """

    def __init__(
        self,
        operation: str,
        path: list[str],
        message: str,
        cleanup_error: BaseException | None = None,
    ):
        self.operation = operation
        self.path = list(path)
        self.cleanup_error = cleanup_error
        super().__init__(message)


class SerializationError(KVTreeError):
    """Raised when a stored record cannot be decoded."""


class StoreError(KVTreeError):
    """Backing store failure that should not be retried."""


class AuthenticationError(StoreError):
    """Backing store rejected our credentials."""


class TransientStoreError(StoreError):
    """Backing store failure that is worth retrying."""


class RateLimitError(TransientStoreError):
    """Backing store answered 429 / too many writes to one key."""

    status = 429

    def __init__(self, retry_after: float | None = None, message: str | None = None):
        self.retry_after = retry_after
        if message is None:
            message = "Rate limit exceeded"
            if retry_after is not None:
                message += f" (retry after {retry_after}s)"
        super().__init__(message)


class ServerError(TransientStoreError):
    """Backing store answered with a 5xx status."""

    def __init__(self, status: int, message: str | None = None):
        self.status = status
        super().__init__(message or f"Server error: {status}")


class NetworkError(TransientStoreError):
    """Connection-level failure talking to the backing store."""


class StoreTimeoutError(TransientStoreError):
    """A backing store call timed out."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Timeout during {operation}")


# Models


class TreeNode(BaseModel):
    """Snapshot of a single node as returned by ``get_node``."""

    path: list[str] = Field(default_factory=list)
    value: Any = None
    children: list[str] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_children(self) -> bool:
        return len(self.children) > 0


class TreeStats(BaseModel):
    """Aggregate counters for a subtree."""

    node_count: int = 0
    leaf_count: int = 0
    internal_node_count: int = 0
    max_depth: int = 0
    estimated_size: int = Field(
        default=0, description="Sum of serialized value lengths (approximate)"
    )


class NodeSpec(BaseModel):
    """One entry of a batch create request."""

    path: list[str]
    value: Any = None


def format_path(path: list[str]) -> str:
    """Human-readable rendering of a path for messages (not an encoding)."""
    return "/" + "/".join(path)
