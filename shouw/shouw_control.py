"""
Resolves `$if[cond] ... ($elseif[cond] ... $endelseif)* ($else ...)? $endif`
blocks, innermost first.
"""
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Tuple

from shouw.shouw_conditions import ConditionEvaluator
from shouw.shouw_datatypes import StructuralError, render_message
from shouw.shouw_unpacker import find_closing_bracket, find_ignorecase

IF_OPEN = "$if["
ELSEIF_OPEN = "$elseif["
ELSE = "$else"
ENDELSEIF = "$endelseif"
ENDIF = "$endif"

_IF_OPEN_RE = re.compile(re.escape(IF_OPEN), re.IGNORECASE)

ConditionResolver = Callable[[str], Awaitable[str]]


@dataclass
class ControlBlock:
    """One `$if ... $endif` region and its captured branches."""
    start: int
    end: int
    condition: str
    if_body: str
    else_body: str = ""
    elseifs: List[Tuple[str, str]] = field(default_factory=list)

    def splice(self, code: str, body: str) -> str:
        return code[:self.start] + body + code[self.end:]


def parse_block(code: str) -> ControlBlock:
    """Captures the innermost-opened control block of `code`.

    That is the region between the last `$if[` and the first `$endif` after
    it; nested blocks are therefore always flattened before their parents.
    """
    opens = [m.start() for m in _IF_OPEN_RE.finditer(code)]
    if not opens:
        keyword = ENDIF if find_ignorecase(code, ENDIF) != -1 else "$if"
        raise StructuralError(render_message("missing_if", keyword=keyword))
    start = opens[-1]

    cond_open = start + len(IF_OPEN) - 1
    cond_close = find_closing_bracket(code, cond_open)
    if cond_close == -1:
        raise StructuralError(render_message("unclosed_if"))
    condition = code[cond_open + 1:cond_close]

    endif = find_ignorecase(code, ENDIF, cond_close + 1)
    if endif == -1:
        raise StructuralError(render_message("missing_endif"))
    body = code[cond_close + 1:endif]

    elseifs: List[Tuple[str, str]] = []
    while True:
        head = find_ignorecase(body, ELSEIF_OPEN)
        if head == -1:
            break
        tail = find_ignorecase(body, ENDELSEIF, head)
        if tail == -1:
            raise StructuralError(render_message("missing_endelseif"))
        open_index = head + len(ELSEIF_OPEN) - 1
        close_index = find_closing_bracket(body[:tail], open_index)
        if close_index == -1:
            raise StructuralError(render_message("unclosed_elseif"))
        elseifs.append((body[open_index + 1:close_index], body[close_index + 1:tail]))
        body = body[:head] + body[tail + len(ENDELSEIF):]

    else_at = find_ignorecase(body, ELSE)
    if else_at == -1:
        if_body, else_body = body, ""
    else:
        if_body, else_body = body[:else_at], body[else_at + len(ELSE):]

    return ControlBlock(
        start=start,
        end=endif + len(ENDIF),
        condition=condition,
        if_body=if_body,
        else_body=else_body,
        elseifs=elseifs,
    )


class ControlFlowResolver:
    """Selects and splices the branch of one control block at a time.

    `resolve_condition` turns a raw condition into literal text by resolving
    the function calls it contains; it is supplied by the interpreter.
    """

    def __init__(self, conditions: ConditionEvaluator, resolve_condition: ConditionResolver):
        self.conditions = conditions
        self.resolve_condition = resolve_condition

    async def _test(self, condition: str) -> bool:
        text = await self.resolve_condition(condition)
        return self.conditions.evaluate(text)

    async def select(self, block: ControlBlock) -> str:
        if await self._test(block.condition):
            return block.if_body
        # Only the first true $elseif wins; later conditions are never resolved
        for condition, body in block.elseifs:
            if await self._test(condition):
                return body
        return block.else_body

    async def resolve(self, code: str) -> str:
        """Replaces the innermost control block of `code` with its chosen branch."""
        if find_ignorecase(code, ENDIF) == -1:
            raise StructuralError(render_message("missing_endif"))
        block = parse_block(code)
        body = await self.select(block)
        return block.splice(code, body)
