"""
Finds which registered functions a document refers to.
"""
from typing import Iterable, List, Optional, Sequence

CONTROL_KEYWORDS = ("$if", "$endif")


class FunctionScanner:
    """Produces the ordered worklist of function names found in a document.

    The worklist holds names, not locations: the dispatcher looks each name
    up again in the current document when it gets to it.
    """

    def __init__(self, names: Iterable[str]):
        self.names: List[str] = list(names) + list(CONTROL_KEYWORDS)

    def match(self, segment: str) -> Optional[str]:
        """Returns the longest name that prefixes `$` + segment, if any."""
        candidate = f"${segment}".lower()
        best = None
        for name in self.names:
            if candidate[:len(name)] == name.lower():
                if best is None or len(name) > len(best):
                    best = name
        return best

    def scan(self, code: str) -> List[str]:
        functions: List[str] = []
        for line in code.split("\n"):
            # Text before the first `$` never names a function
            segments = line.split("$")[1:]
            line_functions = []
            for segment in segments:
                if not segment.strip():
                    continue
                name = self.match(segment)
                if name is not None:
                    line_functions.append(name)
            # Rightmost first within a line
            functions.extend(reversed(line_functions))
        return functions


def is_control_keyword(name: str) -> bool:
    return name.lower() in CONTROL_KEYWORDS


def scan_functions(code: str, names: Sequence[str]) -> List[str]:
    return FunctionScanner(names).scan(code)
