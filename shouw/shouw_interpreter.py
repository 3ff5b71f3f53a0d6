"""
The shouw interpreter: drives scanning, control-flow resolution, argument
unpacking, function invocation and result splicing over one document.
"""
import sys
from typing import Any, Dict, List, Mapping, Optional, TYPE_CHECKING

from shouw.shouw_conditions import ConditionEvaluator
from shouw.shouw_config import InterpreterConfig
from shouw.shouw_control import ControlFlowResolver
from shouw.shouw_datatypes import (
    CallContext, ExecutionState, FunctionDescriptor, FunctionError, Invocation,
    LimitError, Outcome, ShouwError, UsageError, maybe_await, render_message,
)
from shouw.shouw_escape import escape, has_marker, unescape
from shouw.shouw_scanner import FunctionScanner, is_control_keyword
from shouw.shouw_unpacker import ArgumentUnpacker

if TYPE_CHECKING:
    from shouw.shouw_runtime import FunctionRegistry


class Interpreter:
    """Evaluates one document against a read-only function registry.

    An interpreter owns the artifacts and call stack of a single top-level
    evaluation; the ExecutionState is shared with every nested resolution.
    """

    def __init__(
        self,
        registry: 'FunctionRegistry',
        config: Optional[InterpreterConfig] = None,
        state: Optional[ExecutionState] = None,
        extras: Optional[Mapping[str, Any]] = None,
    ):
        self.registry = registry
        self.config = config or InterpreterConfig()
        self.state = state if state is not None else ExecutionState(timezone=self.config.timezone)
        self.extras: Dict[str, Any] = dict(extras or {})
        self.artifacts: Dict[str, Any] = {}
        self.call_stack: List[Dict[str, Any]] = []
        self.steps = 0
        self.conditions = ConditionEvaluator(debug=self.config.debug)
        self.scanner = FunctionScanner(registry.names)
        self.unpacker = ArgumentUnpacker(self.scanner.match)
        self.control = ControlFlowResolver(self.conditions, self._resolve_condition)
        self._depth = 0

    def _dbg(self, *parts):
        if self.config.debug:
            try:
                print("[DBG]", *parts, file=sys.stderr)
            except Exception:
                pass

    async def run(self, code: str) -> str:
        """Resolves every function in `code` and returns the final literal text.

        Raises a ShouwError subclass on any fatal failure.
        """
        resolved = await self._resolve(code)
        return unescape(resolved).strip()

    async def evaluate_nested(self, code: str) -> str:
        """Resolves `code` as a nested expression sharing this evaluation's state."""
        return unescape(await self._resolve(code)).strip()

    def _step(self):
        self.steps += 1
        if self.steps > self.config.max_steps:
            raise LimitError(render_message("too_many_steps", limit=self.config.max_steps))

    async def _resolve(self, code: str) -> str:
        """Runs resolution passes until no function reference is left to handle.

        The returned text still carries literal escapes.
        """
        self._depth += 1
        try:
            if self._depth > self.config.max_depth:
                raise LimitError(render_message("too_deep", limit=self.config.max_depth))
            current = code
            while True:
                current, restart = await self._pass(current)
                if not restart:
                    return current
        finally:
            self._depth -= 1

    async def _pass(self, code: str):
        """One walk over the worklist. Returns (code, restart_needed)."""
        functions = self.scanner.scan(code)
        if not functions:
            return code, False
        self._dbg("PASS", "depth", self._depth, "worklist", functions)

        current = code
        for name in functions:
            if is_control_keyword(name):
                self._step()
                # The chosen branch may hold new calls: rescan from scratch
                return await self.control.resolve(current), True

            invocation = self.unpacker.unpack(name, current)
            if invocation is None:
                continue
            descriptor = self.registry.get(name)
            if descriptor is None:
                continue
            current = await self._call(descriptor, invocation, current)
        return current, False

    async def _call(self, descriptor: FunctionDescriptor, invocation: Invocation, code: str) -> str:
        if descriptor.brackets and not invocation.brackets:
            raise UsageError(
                render_message("missing_brackets", name=descriptor.name),
                hint=render_message("usage_hint", usage=descriptor.usage()),
            )
        self._step()

        args = [await self._resolve_argument(raw) for raw in invocation.raw_args]
        frame = {"name": descriptor.name, "args": args}
        self.call_stack.append(frame)
        outcome = await self._invoke(descriptor, args)

        code = invocation.splice(code, escape(outcome.text))
        if outcome.is_error:
            raise FunctionError(render_message("function_failed", name=descriptor.name, detail=outcome.message))
        self.call_stack.pop()
        # Each artifact kind replaces what earlier calls produced
        self.artifacts.update(outcome.artifacts)
        return code

    async def _resolve_argument(self, raw: Optional[str]) -> Optional[str]:
        if raw is None:
            return None
        if not has_marker(raw):
            return unescape(raw)
        # Nested results are trimmed like literal arguments
        return unescape(await self._resolve(raw)).strip()

    async def _resolve_condition(self, condition: str) -> str:
        # Results stay escaped so that a `$ [ ] ;` in them cannot reopen a call or
        # close the block. `&&`, `||`, parentheses and comparison operators are
        # not escaped and still take part in the condition.
        if "$" not in condition:
            return condition
        return await self._resolve(condition)

    async def _invoke(self, descriptor: FunctionDescriptor, args: List[Optional[str]]) -> Outcome:
        ctx = CallContext(self, descriptor.name, self.extras)
        self._dbg("CALL", descriptor.name, "args", args)
        try:
            raw = await maybe_await(descriptor.code(ctx, args, self.state))
        except ShouwError:
            raise
        except Exception as e:
            raise FunctionError(
                render_message("function_failed", name=descriptor.name, detail=f"{type(e).__name__}: {e}")
            ) from e
        outcome = Outcome.coerce(raw)
        self._dbg("RESULT", descriptor.name, outcome.kind, repr(outcome.text))
        return outcome
