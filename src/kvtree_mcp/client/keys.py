"""Storage key derivation and value (de)serialization."""

import hashlib
import json
from collections.abc import Sequence
from typing import Any, Literal

from ..models import SerializationError

RecordSuffix = Literal["value", "children", "parent"]


class KeyDeriver:
    """Map a path to its flat storage keys.

    The hash is taken over the path as a JSON array, so no two distinct
    segment lists share a key (a plain separator join would let
    ``["a::b"]`` and ``["a", "b"]`` meet). It covers the whole path, so a
    node's keys have no relationship to its parent's or children's keys.
    Moving a node means rewriting every key in its subtree.
    """

    def __init__(self, prefix: str = "tree"):
        self.prefix = prefix

    @staticmethod
    def hash_path(path: Sequence[str]) -> str:
        path_string = json.dumps([str(segment) for segment in path], separators=(",", ":"))
        return hashlib.sha256(path_string.encode("utf-8")).hexdigest()

    def storage_key(self, path: Sequence[str], suffix: RecordSuffix) -> str:
        return f"{self.prefix}-{self.hash_path(path)}-{suffix}"


def serialize_value(value: Any) -> str:
    """Serialize a node value deterministically.

    Dict values have their keys sorted; lists and scalars are written as-is.
    ``None`` becomes ``"null"`` so the value record still marks existence.
    """
    try:
        return json.dumps(
            value,
            sort_keys=isinstance(value, dict),
            separators=(",", ":"),
            ensure_ascii=False,
        )
    except (TypeError, ValueError) as err:
        raise SerializationError(f"Value is not JSON-serializable: {err}") from err


def deserialize_value(serialized: str | None) -> Any:
    if serialized is None:
        return None
    try:
        return json.loads(serialized)
    except (json.JSONDecodeError, TypeError) as err:
        raise SerializationError(f"Failed to deserialize value: {err}") from err
