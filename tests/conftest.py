"""Shared fixtures for KV tree tests."""

import pytest
import pytest_asyncio

from kvtree_mcp.client import KVTreeStorage, MemoryKVBackend, RetryExecutor
from kvtree_mcp.config import TreeConfig


class RecordingSleep:
    """Stands in for asyncio.sleep; remembers requested delays instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def backend() -> MemoryKVBackend:
    return MemoryKVBackend()


@pytest.fixture
def tree_config() -> TreeConfig:
    return TreeConfig(prefix="test", max_retries=3, base_retry_delay=10)


@pytest_asyncio.fixture
async def tree(backend, tree_config, sleeper) -> KVTreeStorage:
    """Fresh tree with an initialized root."""
    retry = RetryExecutor(
        max_retries=tree_config.max_retries,
        base_delay=tree_config.base_retry_delay,
        max_delay=tree_config.max_retry_delay,
        sleep=sleeper,
    )
    storage = KVTreeStorage(backend, tree_config, retry=retry)
    await storage.initialize_root()
    return storage


async def build_tree(tree: KVTreeStorage) -> None:
    """Create a three-level tree.

        /            root (None)
        ├── a        "A"
        │   ├── b    "B"
        │   │   └── d  {"deep": True}
        │   └── c    "C"
        └── e        ["E"]
    """
    await tree.create_node(["a"], "A")
    await tree.create_node(["a", "b"], "B")
    await tree.create_node(["a", "c"], "C")
    await tree.create_node(["a", "b", "d"], {"deep": True})
    await tree.create_node(["e"], ["E"])


@pytest_asyncio.fixture
async def populated(tree) -> KVTreeStorage:
    await build_tree(tree)
    return tree
