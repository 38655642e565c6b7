"""
Tests for storage key derivation and value serialization.
"""

import hashlib

import pytest

from kvtree_mcp.client.keys import KeyDeriver, deserialize_value, serialize_value
from kvtree_mcp.models import SerializationError


class TestKeyDeriver:

    def test_key_format(self):
        deriver = KeyDeriver("mytree")
        expected_hash = hashlib.sha256(b'["documents","reports"]').hexdigest()
        assert deriver.storage_key(["documents", "reports"], "value") == f"mytree-{expected_hash}-value"

    def test_root_hashes_empty_array(self):
        expected_hash = hashlib.sha256(b"[]").hexdigest()
        assert KeyDeriver().storage_key([], "children") == f"tree-{expected_hash}-children"

    def test_deterministic_and_distinct(self):
        deriver = KeyDeriver()
        assert deriver.hash_path(["a", "b"]) == deriver.hash_path(("a", "b"))
        assert deriver.hash_path(["a", "b"]) != deriver.hash_path(["b", "a"])
        assert deriver.hash_path(["a"]) != deriver.hash_path(["a", ""])
        assert len(deriver.hash_path(["a"])) == 64

    @pytest.mark.parametrize(
        "left, right",
        [
            (["std::vector"], ["std", "vector"]),
            (["a:", "b"], ["a", ":b"]),
            (["a::"], ["a", ""]),
            (["a,b"], ["a", "b"]),
            (['a"'], ["a\\"]),
        ],
    )
    def test_segment_boundaries_never_collide(self, left, right):
        deriver = KeyDeriver()
        assert deriver.hash_path(left) != deriver.hash_path(right)

    def test_hash_covers_full_path(self):
        # No relationship between a child's key and its parent's key
        deriver = KeyDeriver()
        parent = deriver.hash_path(["a"])
        child = deriver.hash_path(["a", "b"])
        assert not child.startswith(parent)

    def test_suffixes_share_hash(self):
        deriver = KeyDeriver()
        keys = [deriver.storage_key(["x"], suffix) for suffix in ("value", "children", "parent")]
        assert len({key.rsplit("-", 1)[0] for key in keys}) == 1


class TestSerialization:

    def test_dict_keys_sorted(self):
        assert serialize_value({"b": 1, "a": 2}) == '{"a":2,"b":1}'
        assert serialize_value({"b": 1, "a": 2}) == serialize_value({"a": 2, "b": 1})

    def test_list_kept_in_order(self):
        assert serialize_value([3, 1, 2]) == "[3,1,2]"

    def test_scalars(self):
        assert serialize_value("v") == '"v"'
        assert serialize_value(42) == "42"
        assert serialize_value(True) == "true"
        assert serialize_value(None) == "null"

    def test_non_ascii_not_escaped(self):
        assert serialize_value("café") == '"café"'

    def test_deserialize(self):
        assert deserialize_value('{"a":[1,2]}') == {"a": [1, 2]}
        assert deserialize_value("null") is None
        assert deserialize_value(None) is None

    def test_deserialize_garbage(self):
        with pytest.raises(SerializationError):
            deserialize_value("{not json")

    def test_serialize_unsupported(self):
        with pytest.raises(SerializationError):
            serialize_value({"when": object()})
