"""
Tests for path string parsing and encoding.
"""

import pytest

from kvtree_mcp.path_codec import EscapeMethod, PathCodec

ALL = PathCodec()


class TestParsePath:
    """Decoding path strings into segments."""

    @pytest.mark.parametrize(
        "path_string, expected",
        [
            ("a/b/c", ["a", "b", "c"]),
            ("", []),
            ("/", []),
            ("//", []),
            ("/a//b/", ["a", "b"]),
            ("documents", ["documents"]),
        ],
    )
    def test_splitting_and_empty_segments(self, path_string, expected):
        assert ALL.parse_path(path_string) == expected

    @pytest.mark.parametrize(
        "path_string, expected",
        [
            ("a\\/b", ["a/b"]),
            ("a&amp;b", ["a&b"]),
            ("a%2Fb", ["a/b"]),
            ("a%2fb", ["a/b"]),
            ("a&#47;b", ["a/b"]),
            ("a&#x2F;b", ["a/b"]),
            ("x/a\\/b/y", ["x", "a/b", "y"]),
        ],
    )
    def test_escaped_separator_stays_in_segment(self, path_string, expected):
        assert ALL.parse_path(path_string) == expected

    def test_backslash_escapes(self):
        assert ALL.parse_path("\\n\\t\\r\\\\") == ["\n\t\r\\"]
        assert ALL.parse_path("\\x41\\x7a") == ["Az"]
        assert ALL.parse_path("\\q") == ["q"]

    def test_backslash_hex_needs_two_digits(self):
        assert ALL.parse_path("\\xZZ") == ["xZZ"]
        assert ALL.parse_path("\\x4") == ["x4"]

    def test_trailing_backslash_is_literal(self):
        assert ALL.parse_path("abc\\") == ["abc\\"]

    def test_named_entities(self):
        assert ALL.parse_path("&lt;tag&gt;") == ["<tag>"]
        assert ALL.parse_path("&copy;&deg;&times;") == ["©°×"]
        assert ALL.parse_path("&nbsp;") == ["\u00a0"]

    def test_unknown_named_entity_is_literal(self):
        assert ALL.parse_path("&unknown;") == ["&unknown;"]
        assert ALL.parse_path("a & b") == ["a & b"]

    def test_numeric_entities(self):
        assert ALL.parse_path("&#233;") == ["é"]
        assert ALL.parse_path("&#x20AC;") == ["€"]
        assert ALL.parse_path("&#x1F600;") == ["\U0001F600"]

    def test_invalid_code_point_is_literal(self):
        assert ALL.parse_path("&#xD800;") == ["&#xD800;"]
        assert ALL.parse_path("&#1114112;") == ["&#1114112;"]

    def test_custom_unicode_entities(self):
        assert ALL.parse_path("&u00E9;") == ["é"]
        assert ALL.parse_path("&uE9;") == ["é"]
        assert ALL.parse_path("&u1F600;") == ["\U0001F600"]
        # One hex digit is too short
        assert ALL.parse_path("&uE;") == ["&uE;"]

    def test_percent_needs_two_hex_digits(self):
        assert ALL.parse_path("100%") == ["100%"]
        assert ALL.parse_path("%4") == ["%4"]
        assert ALL.parse_path("%zz") == ["%zz"]

    def test_named_entity_wins_over_numeric(self):
        # "&amp;" is consumed first; "#47;" is then plain text
        assert ALL.parse_path("&amp;#47;") == ["&#47;"]

    def test_disabled_backslash_passes_through(self):
        codec = PathCodec([EscapeMethod.URL_ENCODING])
        assert codec.parse_path("a\\/b") == ["a\\", "b"]
        assert codec.parse_path("a%2Fb") == ["a/b"]

    def test_no_methods_enabled(self):
        codec = PathCodec([])
        assert codec.parse_path("a%2Fb&amp;\\n") == ["a%2Fb&amp;\\n"]

    def test_only_numeric_entities(self):
        codec = PathCodec([EscapeMethod.HTML_NUMERIC_ENTITIES])
        assert codec.parse_path("&amp;&#38;") == ["&amp;&"]

    def test_methods_accept_strings(self):
        codec = PathCodec(["URL_ENCODING"])
        assert codec.enabled_methods == frozenset({EscapeMethod.URL_ENCODING})


class TestCreatePath:
    """Encoding segments into path strings."""

    def test_root_and_empty_segments(self):
        assert ALL.create_path([]) == ""
        assert ALL.create_path(["", "a", ""]) == "a"

    def test_plain_segments(self):
        assert ALL.create_path(["documents", "reports", "2025"]) == "documents/reports/2025"

    def test_all_methods_prefer_compact_forms(self):
        assert ALL.create_path(["a/b", "c"]) == "a\\/b/c"
        assert ALL.encode_component("back\\slash") == "back\\\\slash"
        assert ALL.encode_component("50%") == "50%25"
        assert ALL.encode_component("R&D") == "R&amp;D"
        assert ALL.encode_component("line\nbreak") == "line\\nbreak"
        assert ALL.encode_component("café") == "caf%E9"
        assert ALL.encode_component("€") == "&#x20AC;"
        assert ALL.encode_component("\x01\x7f") == "%01%7F"

    def test_join_path_alias(self):
        assert ALL.join_path(["a", "b"]) == ALL.create_path(["a", "b"])

    def test_url_encoding_only(self):
        codec = PathCodec([EscapeMethod.URL_ENCODING])
        assert codec.encode_component("a/b") == "a%2Fb"
        assert codec.encode_component("\\") == "%5C"
        assert codec.encode_component("&") == "%26"
        assert codec.encode_component("€") == "%E2%82%AC"

    def test_numeric_entities_only(self):
        codec = PathCodec([EscapeMethod.HTML_NUMERIC_ENTITIES])
        assert codec.encode_component("/") == "&#47;"
        assert codec.encode_component("%") == "&#37;"
        assert codec.encode_component("&") == "&#38;"
        assert codec.encode_component("é") == "&#233;"
        assert codec.encode_component("\t") == "&#9;"

    def test_backslash_only(self):
        codec = PathCodec([EscapeMethod.BACKSLASH_ESCAPES])
        assert codec.encode_component("%") == "\\%"
        assert codec.encode_component("&") == "\\&"
        assert codec.encode_component("é") == "\\xE9"
        assert codec.encode_component("€") == "€"

    def test_custom_unicode_only(self):
        codec = PathCodec([EscapeMethod.CUSTOM_UNICODE_ENTITIES])
        assert codec.encode_component("é") == "&uE9;"
        assert codec.encode_component("€") == "&u20AC;"

    def test_unescapable_separator_is_written_literally(self):
        codec = PathCodec([EscapeMethod.CUSTOM_UNICODE_ENTITIES])
        encoded = codec.create_path(["a/b"])
        assert encoded == "a/b"
        # Documented hazard: reads back as two segments
        assert codec.parse_path(encoded) == ["a", "b"]


SEGMENTS = [
    "plain",
    "with/slash",
    "back\\slash",
    "amp&er",
    "per%cent",
    "new\nline\ttab\rcr",
    "café",
    "€uro",
    "\U0001F600",
    "&amp;",
    "%2F",
    "\\/",
]


class TestRoundTrip:
    """decode(encode(S)) == S whenever the enabled schemes cover S."""

    @pytest.mark.parametrize(
        "methods",
        [
            list(EscapeMethod),
            [EscapeMethod.BACKSLASH_ESCAPES, EscapeMethod.HTML_NUMERIC_ENTITIES],
            [EscapeMethod.URL_ENCODING, EscapeMethod.HTML_NUMERIC_ENTITIES],
            [EscapeMethod.URL_ENCODING, EscapeMethod.CUSTOM_UNICODE_ENTITIES],
        ],
        ids=["all", "backslash+numeric", "url+numeric", "url+custom"],
    )
    def test_round_trip(self, methods):
        codec = PathCodec(methods)
        assert codec.parse_path(codec.create_path(SEGMENTS)) == SEGMENTS

    def test_url_only_is_not_reversible_above_latin1(self):
        codec = PathCodec([EscapeMethod.URL_ENCODING])
        assert codec.parse_path(codec.create_path(["€"])) == ["\xe2\x82\xac"]
        # Latin-1 range still survives
        assert codec.parse_path(codec.create_path(["café"])) == ["café"]
