"""Path string parsing and encoding.

A path string is a ``/``-separated list of segments. Segments may contain any
character; characters that would otherwise be ambiguous are written using one
of several escape schemes, each of which can be switched on or off:

    BACKSLASH_ESCAPES        \\n, \\t, \\r, \\\\, \\/, \\xHH, \\<any>
    HTML_NAMED_ENTITIES      &amp;, &lt;, &gt;, ...
    HTML_NUMERIC_ENTITIES    &#123;, &#x7B;
    CUSTOM_UNICODE_ENTITIES  &uHHHH;  (2-8 hex digits)
    URL_ENCODING             %HH

Decoding only recognises enabled schemes; trigger characters of disabled
schemes pass through as literal text. A string written with one set of
schemes and read back with another may therefore split differently.
"""

import re
from collections.abc import Iterable, Sequence
from enum import Enum


class EscapeMethod(str, Enum):
    BACKSLASH_ESCAPES = "BACKSLASH_ESCAPES"
    HTML_NAMED_ENTITIES = "HTML_NAMED_ENTITIES"
    HTML_NUMERIC_ENTITIES = "HTML_NUMERIC_ENTITIES"
    CUSTOM_UNICODE_ENTITIES = "CUSTOM_UNICODE_ENTITIES"
    URL_ENCODING = "URL_ENCODING"


ALL_ESCAPE_METHODS = frozenset(EscapeMethod)

HTML_ENTITIES: dict[str, str] = {
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "quot": '"',
    "apos": "'",
    "nbsp": "\u00a0",
    "copy": "©",
    "reg": "®",
    "trade": "™",
    "hellip": "…",
    "mdash": "—",
    "ndash": "–",
    "lsquo": "\u2018",
    "rsquo": "\u2019",
    "ldquo": "\u201c",
    "rdquo": "\u201d",
    "bull": "•",
    "deg": "°",
    "plusmn": "±",
    "times": "×",
    "divide": "÷",
}

_BACKSLASH_SIMPLE = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "/": "/"}

_NAMED_ENTITY_RE = re.compile(r"&([a-zA-Z][a-zA-Z0-9]*);")
_HEX_ENTITY_RE = re.compile(r"&#x([0-9a-fA-F]+);")
_DEC_ENTITY_RE = re.compile(r"&#([0-9]+);")
_CUSTOM_UNICODE_RE = re.compile(r"&u([0-9a-fA-F]{2,8});")
_HEX2_RE = re.compile(r"[0-9a-fA-F]{2}")

# Characters with a dedicated backslash form, in encode order of preference.
_STRUCTURAL = {
    "/": ("\\/", "%2F", "&#47;"),
    "\\": ("\\\\", "%5C", "&#92;"),
    "\n": ("\\n", "%0A", "&#10;"),
    "\t": ("\\t", "%09", "&#9;"),
    "\r": ("\\r", "%0D", "&#13;"),
}


def _code_point_char(code_point: int) -> str | None:
    """Return the character for a code point, or None if it is not valid."""
    if code_point > 0x10FFFF or 0xD800 <= code_point <= 0xDFFF:
        return None
    return chr(code_point)


class PathCodec:
    """Convert between path strings and segment lists.

    Args:
        enabled_methods: Escape schemes to recognise and emit. Defaults to all.
    """

    def __init__(self, enabled_methods: Iterable[EscapeMethod] | None = None):
        if enabled_methods is None:
            enabled_methods = ALL_ESCAPE_METHODS
        self.enabled_methods = frozenset(EscapeMethod(m) for m in enabled_methods)

    def _enabled(self, method: EscapeMethod) -> bool:
        return method in self.enabled_methods

    # Decoding

    def parse_path(self, path_string: str) -> list[str]:
        """Split a path string into its unescaped segments.

        Empty segments (leading/trailing/doubled slashes) are dropped, so
        ``""``, ``"/"`` and ``"//"`` all denote the root and return ``[]``.
        """
        components: list[str] = []
        current: list[str] = []
        i = 0
        length = len(path_string)

        while i < length:
            char = path_string[i]

            if char == "\\" and self._enabled(EscapeMethod.BACKSLASH_ESCAPES):
                decoded, consumed = self._decode_backslash(path_string, i)
            elif char == "&" and (
                self._enabled(EscapeMethod.HTML_NAMED_ENTITIES)
                or self._enabled(EscapeMethod.HTML_NUMERIC_ENTITIES)
                or self._enabled(EscapeMethod.CUSTOM_UNICODE_ENTITIES)
            ):
                decoded, consumed = self._decode_entity(path_string, i)
            elif char == "%" and self._enabled(EscapeMethod.URL_ENCODING):
                decoded, consumed = self._decode_percent(path_string, i)
            elif char == "/":
                components.append("".join(current))
                current = []
                i += 1
                continue
            else:
                decoded, consumed = char, 1

            current.append(decoded)
            i += consumed

        components.append("".join(current))
        return [component for component in components if component != ""]

    def _decode_backslash(self, text: str, i: int) -> tuple[str, int]:
        if i + 1 >= len(text):
            # Trailing backslash stays literal
            return "\\", 1

        next_char = text[i + 1]
        if next_char in _BACKSLASH_SIMPLE:
            return _BACKSLASH_SIMPLE[next_char], 2
        if next_char == "x":
            hex_str = text[i + 2 : i + 4]
            if _HEX2_RE.fullmatch(hex_str):
                return chr(int(hex_str, 16)), 4
            return "x", 2
        return next_char, 2

    def _decode_entity(self, text: str, i: int) -> tuple[str, int]:
        if self._enabled(EscapeMethod.HTML_NAMED_ENTITIES):
            match = _NAMED_ENTITY_RE.match(text, i)
            if match and match.group(1) in HTML_ENTITIES:
                return HTML_ENTITIES[match.group(1)], len(match.group(0))

        if self._enabled(EscapeMethod.HTML_NUMERIC_ENTITIES):
            for pattern, base in ((_HEX_ENTITY_RE, 16), (_DEC_ENTITY_RE, 10)):
                match = pattern.match(text, i)
                if match:
                    decoded = _code_point_char(int(match.group(1), base))
                    if decoded is not None:
                        return decoded, len(match.group(0))

        if self._enabled(EscapeMethod.CUSTOM_UNICODE_ENTITIES):
            match = _CUSTOM_UNICODE_RE.match(text, i)
            if match:
                decoded = _code_point_char(int(match.group(1), 16))
                if decoded is not None:
                    return decoded, len(match.group(0))

        return "&", 1

    def _decode_percent(self, text: str, i: int) -> tuple[str, int]:
        hex_str = text[i + 1 : i + 3]
        if _HEX2_RE.fullmatch(hex_str):
            return chr(int(hex_str, 16)), 3
        return "%", 1

    # Encoding

    def create_path(self, components: Sequence[str]) -> str:
        """Render segments as a path string using the most compact escapes.

        Empty segments are dropped; the root (no segments) renders as ``""``.

        Round-tripping through :meth:`parse_path` is only guaranteed when the
        enabled schemes can escape every hazardous character in the input.
        With no scheme able to escape ``/`` (or ``\\`` under backslash
        escapes, ``&`` under entities, ``%`` under URL encoding) the character
        is written literally and will be misread. ``%HH`` and ``\\xHH`` decode
        as single Latin-1 characters, so code points above U+00FF written as
        UTF-8 percent sequences (URL encoding as the only usable scheme) do not
        survive a round trip.
        """
        encoded = [self.encode_component(c) for c in components if c != ""]
        return "/".join(encoded)

    join_path = create_path

    def encode_component(self, component: str) -> str:
        """Escape a single segment."""
        result_chars: list[str] = []

        for char in component:
            code_point = ord(char)

            if char in _STRUCTURAL:
                backslash, percent, numeric = _STRUCTURAL[char]
                if self._enabled(EscapeMethod.BACKSLASH_ESCAPES):
                    result_chars.append(backslash)
                elif self._enabled(EscapeMethod.URL_ENCODING):
                    result_chars.append(percent)
                elif self._enabled(EscapeMethod.HTML_NUMERIC_ENTITIES):
                    result_chars.append(numeric)
                else:
                    # No usable escape; this segment will not parse back intact
                    result_chars.append(char)
            elif char == "%":
                if self._enabled(EscapeMethod.URL_ENCODING):
                    result_chars.append("%25")
                elif self._enabled(EscapeMethod.HTML_NUMERIC_ENTITIES):
                    result_chars.append("&#37;")
                elif self._enabled(EscapeMethod.BACKSLASH_ESCAPES):
                    result_chars.append("\\%")
                else:
                    result_chars.append(char)
            elif char == "&":
                if self._enabled(EscapeMethod.HTML_NAMED_ENTITIES):
                    result_chars.append("&amp;")
                elif self._enabled(EscapeMethod.URL_ENCODING):
                    result_chars.append("%26")
                elif self._enabled(EscapeMethod.HTML_NUMERIC_ENTITIES):
                    result_chars.append("&#38;")
                elif self._enabled(EscapeMethod.BACKSLASH_ESCAPES):
                    result_chars.append("\\&")
                else:
                    result_chars.append(char)
            elif code_point < 32 or code_point > 126:
                result_chars.append(self._encode_non_ascii(char, code_point))
            else:
                result_chars.append(char)

        return "".join(result_chars)

    def _encode_non_ascii(self, char: str, code_point: int) -> str:
        if code_point <= 0xFF:
            if self._enabled(EscapeMethod.URL_ENCODING):
                return f"%{code_point:02X}"
            if self._enabled(EscapeMethod.BACKSLASH_ESCAPES):
                return f"\\x{code_point:02X}"
            if self._enabled(EscapeMethod.HTML_NUMERIC_ENTITIES):
                return f"&#{code_point};"
            if self._enabled(EscapeMethod.CUSTOM_UNICODE_ENTITIES):
                return f"&u{code_point:02X};"
            return char

        if self._enabled(EscapeMethod.HTML_NUMERIC_ENTITIES):
            return f"&#x{code_point:X};"
        if self._enabled(EscapeMethod.CUSTOM_UNICODE_ENTITIES):
            return f"&u{code_point:04X};"
        if self._enabled(EscapeMethod.URL_ENCODING):
            return "".join(f"%{byte:02X}" for byte in char.encode("utf-8"))
        return char
