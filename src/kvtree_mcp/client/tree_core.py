"""KV tree storage - single-node records and child-list maintenance.

Every node is three independent entries in the backing store:

    <prefix>-<sha256(path)>-value      JSON value; its presence means "exists"
    <prefix>-<sha256(path)>-children   JSON list of child segments
    <prefix>-<sha256(path)>-parent     JSON parent path (non-root only, never read)

There are no multi-key transactions. Multi-step writes run in a fixed order
and a failure part way leaves whatever was already written.
"""

import logging
from collections.abc import Sequence
from typing import Any

from ..config import TreeConfig
from ..models import (
    NodeAlreadyExistsError,
    NodeNotFoundError,
    ParentMissingError,
    TreeNode,
    format_path,
)
from .keys import KeyDeriver, RecordSuffix, deserialize_value, serialize_value
from .kv_backend import KVBackend
from .retry import RetryExecutor

logger = logging.getLogger(__name__)


class NodeStore:
    """CRUD primitives for individual tree nodes."""

    def __init__(
        self,
        backend: KVBackend,
        config: TreeConfig | None = None,
        retry: RetryExecutor | None = None,
    ):
        self.backend = backend
        self.config = config or TreeConfig()
        self.keys = KeyDeriver(self.config.prefix)
        self.retry = retry or RetryExecutor(
            max_retries=self.config.max_retries,
            base_delay=self.config.base_retry_delay,
            max_delay=self.config.max_retry_delay,
        )

    def _key(self, path: Sequence[str], suffix: RecordSuffix) -> str:
        return self.keys.storage_key(path, suffix)

    # Retried single-key primitives

    async def _get(self, key: str, context: str) -> str | None:
        return await self.retry.run(lambda: self.backend.get(key), context)

    async def _put(self, key: str, value: str, context: str) -> None:
        await self.retry.run(lambda: self.backend.put(key, value), context)

    async def _delete(self, key: str, context: str) -> None:
        await self.retry.run(lambda: self.backend.delete(key), context)

    # Node operations

    async def initialize_root(self) -> None:
        """Create the root node if it is missing (idempotent)."""
        if not await self.node_exists([]):
            await self.create_node([], None)
            logger.info("Initialized root node")

    async def node_exists(self, path: Sequence[str]) -> bool:
        """Whether the node's value record is present.

        Any error while reading (including exhausted retries) is reported as
        ``False``; callers cannot tell "missing" from "check failed" here.
        """
        try:
            value = await self.backend.get(self._key(path, "value"))
        except Exception as err:  # noqa: BLE001
            logger.debug(f"Existence check for {format_path(list(path))} failed: {err}")
            return False
        return value is not None

    async def create_node(self, path: Sequence[str], value: Any = None) -> None:
        """Create a node under an existing parent.

        Writes, in order: value, parent pointer (non-root), empty children
        list, then the parent's children list. Nothing is rolled back if a
        later step fails.

        Only the root is guarded against re-creation. Creating a non-root
        node that already exists overwrites its value and resets its children
        list to ``[]``; its former descendants keep their records but are no
        longer reachable, and ``delete_node`` will not remove them.

        Raises:
            NodeAlreadyExistsError: ``path`` is the root and it already exists.
            ParentMissingError: The parent node does not exist.
        """
        path = list(path)
        display = format_path(path)

        if not path:
            if await self.node_exists([]):
                raise NodeAlreadyExistsError("Root node already exists")
        else:
            parent_path = path[:-1]
            if not await self.node_exists(parent_path):
                raise ParentMissingError(parent_path)

        await self._put(self._key(path, "value"), serialize_value(value), f"create value for {display}")

        if path:
            await self._put(
                self._key(path, "parent"),
                serialize_value(path[:-1]),
                f"create parent pointer for {display}",
            )

        await self._put(self._key(path, "children"), serialize_value([]), f"create children for {display}")

        if path:
            await self.add_child_to_parent(path[:-1], path[-1])

        logger.debug(f"Created node {display}")

    async def _read_children(self, path: Sequence[str], context: str) -> list[str] | None:
        serialized = await self._get(self._key(path, "children"), context)
        if serialized is None:
            return None
        return deserialize_value(serialized) or []

    async def add_child_to_parent(self, parent_path: Sequence[str], child_key: str) -> None:
        """Append ``child_key`` to the parent's children list if absent.

        Read-modify-write, not compare-and-swap: two writers updating the
        same parent concurrently can lose one of the updates.
        """
        children = await self._read_children(parent_path, "get parent children") or []
        if child_key in children:
            return
        children.append(child_key)
        await self._put(self._key(parent_path, "children"), serialize_value(children), "update parent children")

    async def remove_child_from_parent(self, parent_path: Sequence[str], child_key: str) -> None:
        """Drop ``child_key`` from the parent's children list (same race as adding)."""
        children = await self._read_children(parent_path, "get parent children for removal") or []
        updated = [key for key in children if key != child_key]
        await self._put(self._key(parent_path, "children"), serialize_value(updated), "remove child from parent")

    async def get_value(self, path: Sequence[str]) -> Any:
        """Return the node's value.

        Raises:
            NodeNotFoundError: The value record is absent.
        """
        path = list(path)
        serialized = await self._get(self._key(path, "value"), f"get value for {format_path(path)}")
        if serialized is None:
            raise NodeNotFoundError(path)
        return deserialize_value(serialized)

    async def set_value(self, path: Sequence[str], value: Any) -> None:
        """Overwrite the value of an existing node.

        Raises:
            NodeNotFoundError: The node does not exist.
        """
        path = list(path)
        if not await self.node_exists(path):
            raise NodeNotFoundError(path)
        await self._put(self._key(path, "value"), serialize_value(value), f"set value for {format_path(path)}")

    async def get_children(self, path: Sequence[str]) -> list[str]:
        """Return the node's child segments (possibly empty).

        Raises:
            NodeNotFoundError: The children record is absent.
        """
        path = list(path)
        children = await self._read_children(path, f"get children for {format_path(path)}")
        if children is None:
            raise NodeNotFoundError(path)
        return children

    async def get_node(self, path: Sequence[str]) -> TreeNode:
        """Read value and children into a snapshot."""
        path = list(path)
        value = await self.get_value(path)
        children = await self.get_children(path)
        return TreeNode(path=path, value=value, children=children)

    async def delete_single_node(self, path: Sequence[str]) -> None:
        """Remove a node's own records; does not touch children or the parent link."""
        suffixes: list[RecordSuffix] = ["value", "children"]
        if path:
            suffixes.append("parent")
        for suffix in suffixes:
            key = self._key(path, suffix)
            await self._delete(key, f"delete key {key}")
