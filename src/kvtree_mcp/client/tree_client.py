"""KV tree storage - subtree algorithms (delete, move, traverse, export)."""

import inspect
import logging
from collections import deque
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, Literal

from ..models import (
    InvalidOperationError,
    KVTreeError,
    NodeAlreadyExistsError,
    NodeNotFoundError,
    NodeSpec,
    TreeNode,
    TreeOperationError,
    TreeStats,
    format_path,
)
from .keys import serialize_value
from .tree_core import NodeStore

logger = logging.getLogger(__name__)

TraversalStrategy = Literal["depth-first", "breadth-first"]
# Visitors and predicates may be plain functions or coroutine functions
Visitor = Callable[[TreeNode, int], Any]
Predicate = Callable[[TreeNode, int], Any]


async def _call_maybe_async(func: Callable[..., Any], *args: Any) -> Any:
    result = func(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class KVTreeStorage(NodeStore):
    """Path-addressed tree on top of a flat key-value store.

    Operations are sequences of single-key calls issued one at a time;
    siblings are never processed concurrently.
    """

    # Delete

    async def delete_node(self, path: Sequence[str]) -> None:
        """Delete a node and its whole subtree, then unlink it from its parent.

        Records are removed leaves-first. A failure part way leaves a
        partially deleted subtree and is raised as ``TreeOperationError``.

        Raises:
            InvalidOperationError: ``path`` is the root.
            NodeNotFoundError: The node does not exist.
            TreeOperationError: A storage call failed mid-deletion.
        """
        path = list(path)
        if not path:
            raise InvalidOperationError("Cannot delete root node")
        if not await self.node_exists(path):
            raise NodeNotFoundError(path)

        descendants = await self.collect_descendants(path)
        all_paths = [path, *descendants]
        all_paths.reverse()

        try:
            for node_path in all_paths:
                await self.delete_single_node(node_path)
            await self.remove_child_from_parent(path[:-1], path[-1])
        except Exception as err:
            raise TreeOperationError(
                "delete", path, f"Failed to delete node {format_path(path)}: {err}"
            ) from err

        logger.info(f"Deleted {format_path(path)} ({len(all_paths)} nodes)")

    async def collect_descendants(self, path: Sequence[str]) -> list[list[str]]:
        """Breadth-first list of every descendant path (excluding ``path``)."""
        descendants: list[list[str]] = []
        queue: deque[list[str]] = deque([list(path)])

        while queue:
            current = queue.popleft()
            try:
                children = await self.get_children(current)
            except NodeNotFoundError:
                # Children record already gone; nothing below to collect
                continue
            for child_key in children:
                child_path = [*current, child_key]
                descendants.append(child_path)
                queue.append(child_path)

        return descendants

    # Move

    async def move_node(
        self,
        source_path: Sequence[str],
        target_parent_path: Sequence[str],
        new_key: str,
    ) -> list[str]:
        """Move a subtree under a new parent, optionally renaming it.

        Copies the subtree to the destination, then deletes the source. If
        copying fails, the partial copy is deleted on a best-effort basis; a
        failing cleanup is logged and attached as ``cleanup_error`` while the
        copy failure is what gets raised. If deleting the source fails after a
        complete copy, the copy is kept and both locations are populated.

        Returns:
            The destination path.

        Raises:
            InvalidOperationError: ``source_path`` is the root, or the
                destination lies inside the source subtree.
            NodeNotFoundError: Source or target parent does not exist.
            NodeAlreadyExistsError: The destination is occupied.
            TreeOperationError: The copy or the source deletion failed.
        """
        source_path = list(source_path)
        target_parent_path = list(target_parent_path)
        new_path = [*target_parent_path, new_key]

        if not source_path:
            raise InvalidOperationError("Cannot move root node")
        if len(new_path) > len(source_path) and new_path[: len(source_path)] == source_path:
            raise InvalidOperationError(
                f"Cannot move {format_path(source_path)} into its own subtree"
            )
        if not await self.node_exists(source_path):
            raise NodeNotFoundError(source_path, f"Source node does not exist: {format_path(source_path)}")
        if not await self.node_exists(target_parent_path):
            raise NodeNotFoundError(
                target_parent_path,
                f"Target parent does not exist: {format_path(target_parent_path)}",
            )
        if await self.node_exists(new_path):
            raise NodeAlreadyExistsError(f"Target path already exists: {format_path(new_path)}")

        try:
            await self.copy_subtree(source_path, target_parent_path, new_key)
        except Exception as err:
            cleanup_error: BaseException | None = None
            try:
                if await self.node_exists(new_path):
                    await self.delete_node(new_path)
            except Exception as cleanup_err:  # noqa: BLE001
                cleanup_error = cleanup_err
                logger.warning(f"Cleanup of partial copy at {format_path(new_path)} failed: {cleanup_err}")
            raise TreeOperationError(
                "move",
                source_path,
                f"Failed to move node {format_path(source_path)}: {err}",
                cleanup_error=cleanup_error,
            ) from err

        try:
            await self.delete_node(source_path)
        except Exception as err:
            raise TreeOperationError(
                "move",
                source_path,
                f"Copied {format_path(source_path)} to {format_path(new_path)} "
                f"but failed to delete the source: {err}",
            ) from err

        logger.info(f"Moved {format_path(source_path)} to {format_path(new_path)}")
        return new_path

    async def copy_subtree(
        self,
        source_path: Sequence[str],
        target_parent_path: Sequence[str],
        new_key: str,
    ) -> None:
        """Recreate ``source_path`` and its descendants as ``target_parent_path + [new_key]``."""
        source_node = await self.get_node(source_path)
        new_path = [*target_parent_path, new_key]

        await self.create_node(new_path, source_node.value)

        for child_key in source_node.children:
            await self.copy_subtree([*source_node.path, child_key], new_path, child_key)

    # Traversal

    async def traverse(
        self,
        path: Sequence[str] = (),
        visitor: Visitor | None = None,
        strategy: TraversalStrategy = "depth-first",
        max_depth: int | None = None,
        include_internal: bool = True,
    ) -> None:
        """Visit the subtree rooted at ``path``.

        The visitor (sync or async) gets ``(node, depth)``; returning exactly
        ``False`` stops descent below that node. Nodes at ``max_depth`` are
        still visited, their children are not.

        ``include_internal`` is accepted for API compatibility and currently
        has no effect; internal nodes are always visited.

        Raises:
            NodeNotFoundError: The starting node does not exist.
            ValueError: Unknown strategy or no visitor.
        """
        if visitor is None:
            raise ValueError("traverse() requires a visitor")
        path = list(path)
        if not await self.node_exists(path):
            raise NodeNotFoundError(path, f"Starting node does not exist: {format_path(path)}")

        limit = float("inf") if max_depth is None else max_depth

        if strategy == "breadth-first":
            await self._breadth_first(path, visitor, limit)
        elif strategy == "depth-first":
            await self._depth_first(path, visitor, limit, 0)
        else:
            raise ValueError(f"Unknown traversal strategy: {strategy}")

    async def _depth_first(self, path: list[str], visitor: Visitor, max_depth: float, depth: int) -> None:
        if depth > max_depth:
            return

        node = await self.get_node(path)
        if await _call_maybe_async(visitor, node, depth) is False:
            return

        for child_key in node.children:
            await self._depth_first([*path, child_key], visitor, max_depth, depth + 1)

    async def _breadth_first(self, path: list[str], visitor: Visitor, max_depth: float) -> None:
        queue: deque[tuple[list[str], int]] = deque([(path, 0)])

        while queue:
            current, depth = queue.popleft()
            if depth > max_depth:
                continue

            node = await self.get_node(current)
            if await _call_maybe_async(visitor, node, depth) is False:
                continue

            for child_key in node.children:
                queue.append(([*current, child_key], depth + 1))

    async def find_nodes(self, predicate: Predicate, start_path: Sequence[str] = ()) -> list[TreeNode]:
        """All nodes under ``start_path`` (inclusive) matching ``predicate``."""
        results: list[TreeNode] = []

        async def collect(node: TreeNode, depth: int) -> bool:
            if await _call_maybe_async(predicate, node, depth):
                results.append(node)
            return True

        await self.traverse(start_path, collect)
        return results

    async def get_stats(self, path: Sequence[str] = ()) -> TreeStats:
        """Count nodes, leaves and depth under ``path``.

        ``estimated_size`` sums the serialized length of non-empty values and
        is only a rough figure.
        """
        stats = TreeStats()

        def accumulate(node: TreeNode, depth: int) -> bool:
            stats.node_count += 1
            if not node.children:
                stats.leaf_count += 1
            stats.max_depth = max(stats.max_depth, depth)
            if node.value:
                stats.estimated_size += len(serialize_value(node.value))
            return True

        await self.traverse(path, accumulate)
        stats.internal_node_count = stats.node_count - stats.leaf_count
        return stats

    # Bulk

    async def batch_create_nodes(self, specs: Iterable[NodeSpec | Mapping[str, Any]]) -> int:
        """Create many nodes, shallowest first so parents precede children.

        Returns:
            Number of nodes created.
        """
        parsed = [spec if isinstance(spec, NodeSpec) else NodeSpec.model_validate(spec) for spec in specs]
        parsed.sort(key=lambda spec: len(spec.path))

        for spec in parsed:
            await self.create_node(spec.path, spec.value)

        return len(parsed)

    async def export_tree(self, path: Sequence[str] = ()) -> dict[str, Any]:
        """Materialize a subtree as ``{"value": ..., "children": {key: {...}}}``."""
        node = await self.get_node(path)
        children: dict[str, Any] = {}
        for child_key in node.children:
            children[child_key] = await self.export_tree([*node.path, child_key])
        return {"value": node.value, "children": children}

    async def import_tree(self, tree_data: Mapping[str, Any], path: Sequence[str] = ()) -> None:
        """Recreate an exported subtree at ``path``.

        At the root, the root is initialized if needed and its value replaced
        when the data carries one. Elsewhere each node goes through
        ``create_node``, so the parent of ``path`` must exist. An existing
        node at ``path`` is not rejected: it is overwritten and its previous
        descendants are orphaned (see ``create_node``).

        Raises:
            KVTreeError: A node entry or its ``children`` is not an object.
        """
        path = list(path)
        if not isinstance(tree_data, Mapping):
            raise KVTreeError(f"Invalid tree data at {format_path(path)}: expected an object")

        children = tree_data.get("children") or {}
        if not isinstance(children, Mapping):
            raise KVTreeError(f"Invalid tree data at {format_path(path)}: children must be an object")

        if not path:
            await self.initialize_root()
            if "value" in tree_data:
                await self.set_value([], tree_data["value"])
        else:
            await self.create_node(path, tree_data.get("value"))

        for child_key, child_data in children.items():
            await self.import_tree(child_data, [*path, child_key])
