"""
Reversible encoding of the characters reserved by the document syntax.

Function results are escaped before they are spliced back into a document so
that their text can never be read as new syntax. The encoded forms are plain
`#NAME#` tokens; `#` itself is encoded too, which keeps the mapping bijective.
"""
import re
from typing import Dict

MARKERS = ("$", "[", "]", ";")

_ENCODE: Dict[str, str] = {
    "#": "#HASH#",
    "$": "#DOLLAR#",
    "[": "#LEFT#",
    "]": "#RIGHT#",
    ";": "#SEMI#",
}
_DECODE: Dict[str, str] = {v: k for k, v in _ENCODE.items()}

_ENCODE_RE = re.compile("[" + re.escape("".join(_ENCODE)) + "]")
_DECODE_RE = re.compile("|".join(re.escape(token) for token in _DECODE))


def escape(text: str) -> str:
    """Encodes every marker character (and `#`) in `text`."""
    if not text:
        return ""
    return _ENCODE_RE.sub(lambda m: _ENCODE[m.group(0)], str(text))


def unescape(text: str) -> str:
    """Decodes the tokens produced by `escape` in a single left-to-right pass."""
    if not text:
        return ""
    return _DECODE_RE.sub(lambda m: _DECODE[m.group(0)], str(text))


def has_marker(text: str) -> bool:
    return any(ch in text for ch in MARKERS)
