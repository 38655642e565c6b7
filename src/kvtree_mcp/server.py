"""KV tree MCP server implementation using FastMCP."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastmcp import FastMCP

from .client import CloudflareKVBackend, KVBackend, KVTreeStorage, MemoryKVBackend
from .config import ServerConfig, setup_logging
from .path_codec import PathCodec

logger = logging.getLogger(__name__)

# Global instances, set up by the lifespan
_tree: KVTreeStorage | None = None
_codec: PathCodec | None = None
_backend: KVBackend | None = None


def get_tree() -> KVTreeStorage:
    """Get the global tree storage instance."""
    if _tree is None:
        raise RuntimeError("Tree storage not initialized. Server not started properly.")
    return _tree


def get_codec() -> PathCodec:
    """Get the global path codec."""
    if _codec is None:
        raise RuntimeError("Path codec not initialized. Server not started properly.")
    return _codec


def build_backend(config: ServerConfig) -> KVBackend:
    """Instantiate the backing store selected by ``config.backend``."""
    if config.backend == "cloudflare":
        return CloudflareKVBackend(config.get_kv_config())
    logger.warning("Using in-memory backend; data is lost when the server stops")
    return MemoryKVBackend()


@asynccontextmanager
async def lifespan(_app: FastMCP) -> AsyncIterator[None]:
    """Manage server lifecycle."""
    global _tree, _codec, _backend

    logger.info("Starting KV tree MCP server")

    config = ServerConfig()
    tree_config = config.get_tree_config()

    _backend = build_backend(config)
    _codec = PathCodec(tree_config.escape_methods)
    _tree = KVTreeStorage(_backend, tree_config)

    await _tree.initialize_root()
    logger.info(f"Tree storage ready (backend={config.backend}, prefix={tree_config.prefix})")

    try:
        yield
    finally:
        logger.info("Shutting down KV tree MCP server")
        if isinstance(_backend, CloudflareKVBackend):
            await _backend.close()
        _tree = None
        _codec = None
        _backend = None


mcp = FastMCP(
    "KV Tree Storage",
    instructions=(
        "Hierarchical key-value storage. Paths are '/'-separated; escape a literal "
        "'/' inside a segment as '\\/' or '%2F'. An empty path is the root."
    ),
    lifespan=lifespan,
)


# Tool bodies. Kept free of FastMCP so they can be called directly.


async def handle_get_value(tree: KVTreeStorage, codec: PathCodec, path: str | None) -> dict[str, Any]:
    segments = codec.parse_path(path or "")
    if not await tree.node_exists(segments):
        return {"path": codec.create_path(segments), "exists": False, "value": None}
    return {"path": codec.create_path(segments), "exists": True, "value": await tree.get_value(segments)}


async def handle_set_value(tree: KVTreeStorage, codec: PathCodec, path: str | None, value: Any) -> dict[str, Any]:
    """Store ``value`` at ``path``, creating the node if needed.

    Returns the prior value and whether anything was written. Writing the
    value a node already holds is skipped to spare the per-key write limit.
    """
    segments = codec.parse_path(path or "")
    prior_value = None
    replaced = False
    stored = True

    if await tree.node_exists(segments):
        prior_value = await tree.get_value(segments)
        if prior_value != value:
            replaced = True
        else:
            stored = False

    if stored:
        if replaced:
            await tree.set_value(segments, value)
        else:
            await tree.create_node(segments, value)

    return {"priorValue": prior_value, "stored": stored, "replaced": replaced}


async def handle_get_children(tree: KVTreeStorage, codec: PathCodec, path: str | None) -> dict[str, Any]:
    segments = codec.parse_path(path or "")
    if not await tree.node_exists(segments):
        return {"path": codec.create_path(segments), "exists": False, "children": None}
    children = await tree.get_children(segments)
    return {
        "path": codec.create_path(segments),
        "exists": True,
        "children": children,
        "paths": [codec.create_path([*segments, child]) for child in children],
    }


async def handle_create_node(tree: KVTreeStorage, codec: PathCodec, path: str, value: Any = None) -> dict[str, Any]:
    segments = codec.parse_path(path)
    await tree.create_node(segments, value)
    return {"success": True, "path": codec.create_path(segments)}


async def handle_delete_node(tree: KVTreeStorage, codec: PathCodec, path: str) -> dict[str, Any]:
    segments = codec.parse_path(path)
    await tree.delete_node(segments)
    return {"success": True, "deleted": codec.create_path(segments)}


async def handle_move_node(
    tree: KVTreeStorage,
    codec: PathCodec,
    source: str,
    target_parent: str | None,
    new_key: str,
) -> dict[str, Any]:
    """Move ``source`` under ``target_parent`` as ``new_key``.

    ``new_key`` is a raw segment, so a ``/`` in it stays part of the key.
    """
    source_segments = codec.parse_path(source)
    new_path = await tree.move_node(source_segments, codec.parse_path(target_parent or ""), new_key)
    return {
        "success": True,
        "from": codec.create_path(source_segments),
        "path": codec.create_path(new_path),
    }


async def handle_get_stats(tree: KVTreeStorage, codec: PathCodec, path: str | None) -> dict[str, Any]:
    segments = codec.parse_path(path or "")
    stats = await tree.get_stats(segments)
    return {"path": codec.create_path(segments), **stats.model_dump()}


async def handle_export_tree(tree: KVTreeStorage, codec: PathCodec, path: str | None) -> dict[str, Any]:
    segments = codec.parse_path(path or "")
    return {"path": codec.create_path(segments), "tree": await tree.export_tree(segments)}


# Tools


@mcp.tool(name="getValue", description="Get the value stored at a path (null if the node does not exist)")
async def get_value(path: str = "") -> dict:
    """Read a node's value.

    Args:
        path: Path string such as "documents/reports"; empty for the root
    """
    return await handle_get_value(get_tree(), get_codec(), path)


@mcp.tool(name="setValue", description="Store a value at a path, creating the node if its parent exists")
async def set_value(path: str, value: Any) -> dict:
    """Write a node's value.

    Args:
        path: Path string of the node
        value: Any JSON value

    Returns:
        Dictionary with priorValue, stored and replaced
    """
    return await handle_set_value(get_tree(), get_codec(), path, value)


@mcp.tool(name="getChildren", description="List the child keys of the node at a path")
async def get_children(path: str = "") -> dict:
    """List a node's children.

    Args:
        path: Path string of the node; empty for the root
    """
    return await handle_get_children(get_tree(), get_codec(), path)


@mcp.tool(name="createNode", description="Create a node under an existing parent")
async def create_node(path: str, value: Any = None) -> dict:
    return await handle_create_node(get_tree(), get_codec(), path, value)


@mcp.tool(name="deleteNode", description="Delete a node and all of its descendants")
async def delete_node(path: str) -> dict:
    return await handle_delete_node(get_tree(), get_codec(), path)


@mcp.tool(name="moveNode", description="Move a subtree under a new parent with a new key")
async def move_node(source: str, target_parent: str, new_key: str) -> dict:
    """Move a subtree.

    Args:
        source: Path of the node to move
        target_parent: Path of the new parent (empty for the root)
        new_key: Raw (unescaped) key of the node under its new parent
    """
    return await handle_move_node(get_tree(), get_codec(), source, target_parent, new_key)


@mcp.tool(name="getStats", description="Count nodes, leaves and depth below a path")
async def get_stats(path: str = "") -> dict:
    return await handle_get_stats(get_tree(), get_codec(), path)


@mcp.tool(name="exportTree", description="Export the subtree at a path as nested JSON")
async def export_tree(path: str = "") -> dict:
    return await handle_export_tree(get_tree(), get_codec(), path)


def main() -> None:
    """Run the server over stdio."""
    setup_logging(ServerConfig().log_level)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
