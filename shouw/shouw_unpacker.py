"""
Locates one invocation of a function in a document and splits its arguments.
"""
import re
from typing import Callable, List, Optional

from shouw.shouw_datatypes import Invocation
from shouw.shouw_escape import MARKERS


def find_ignorecase(haystack: str, needle: str, start: int = 0) -> int:
    """Case-insensitive str.find that keeps indexes valid for `haystack`."""
    m = re.compile(re.escape(needle), re.IGNORECASE).search(haystack, start)
    return m.start() if m else -1


def find_closing_bracket(code: str, open_index: int) -> int:
    """Returns the index of the `]` matching the `[` at `open_index`, or -1."""
    depth = 0
    for i in range(open_index, len(code)):
        ch = code[i]
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return i
    return -1


def split_arguments(text: str) -> List[Optional[str]]:
    """Splits on `;` at bracket depth zero. Empty slots become None.

    A trailing empty slot is dropped, so `a;` has one argument.
    """
    args: List[str] = []
    depth = 0
    current: List[str] = []
    for ch in text:
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
        elif ch == ";" and depth == 0:
            args.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    last = "".join(current).strip()
    if last:
        args.append(last)
    return [a if a != "" else None for a in args]


class ArgumentUnpacker:
    """Finds the span and raw arguments of the first occurrence of a name.

    With a `matcher` (the scanner's longest-prefix lookup), an occurrence only
    counts when no longer registered name starts there, so `$user` is never
    found inside `$userTag`.
    """

    def __init__(self, matcher: Optional[Callable[[str], Optional[str]]] = None):
        self.matcher = matcher

    def _owns(self, name: str, code: str, start: int) -> bool:
        if self.matcher is None:
            return True
        segment_end = code.find("$", start + 1)
        segment = code[start + 1:segment_end if segment_end != -1 else len(code)]
        longest = self.matcher(segment)
        return longest is not None and longest.lower() == name.lower()

    def find(self, name: str, code: str) -> int:
        start = find_ignorecase(code, name)
        while start != -1 and not self._owns(name, code, start):
            start = find_ignorecase(code, name, start + 1)
        return start

    def unpack(self, name: str, code: str) -> Optional[Invocation]:
        start = self.find(name, code)
        if start == -1:
            return None
        # `$$name` is an escaped literal
        if start > 0 and code[start - 1] == "$":
            return None

        name_end = start + len(name)
        bare = Invocation(name=name, start=start, end=name_end)

        open_index = code.find("[", name_end)
        if open_index == -1:
            return bare
        between = code[name_end:open_index]
        if any(marker in between for marker in MARKERS):
            return bare

        close_index = find_closing_bracket(code, open_index)
        if close_index == -1:
            return None

        inner = code[open_index + 1:close_index].strip()
        return Invocation(
            name=name,
            start=start,
            end=close_index + 1,
            raw_args=tuple(split_arguments(inner)),
            brackets=True,
        )
