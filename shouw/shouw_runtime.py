# shouw_runtime.py

import inspect
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Literal, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from shouw.shouw_config import InterpreterConfig
from shouw.shouw_datatypes import (
    CallContext, ExecutionState, FunctionDescriptor, Outcome, ShouwError, maybe_await,
)
from shouw.shouw_interpreter import Interpreter
from shouw.shouw_scanner import CONTROL_KEYWORDS

# ===================================================================
# 1. Function Registry
# ===================================================================

RESERVED_NAMES = CONTROL_KEYWORDS + ("$else", "$elseif", "$endelseif")


def normalize_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise ValueError("function name must not be empty")
    return name if name.startswith("$") else f"${name}"


def macro_function(name: Optional[str] = None, *, brackets: bool = False, params: Sequence[str] = ()):
    """A decorator to mark methods as callable from documents.

    Without an explicit name, `_check_condition` is exposed as `$checkCondition`.
    """
    def decorate(func):
        func._shouw_meta = {"name": name, "brackets": brackets, "params": tuple(params)}
        return func
    return decorate


def _camel_name(attr: str) -> str:
    parts = [p for p in attr.strip("_").split("_") if p]
    if not parts:
        raise ValueError(f"cannot derive a function name from {attr!r}")
    return "$" + parts[0] + "".join(p[:1].upper() + p[1:] for p in parts[1:])


class FunctionRegistry:
    """Case-insensitive map of `$name` to FunctionDescriptor."""

    def __init__(self):
        self._functions: Dict[str, FunctionDescriptor] = {}

    def register(self, name: str, code: Callable[..., Any], *, brackets: bool = False,
                 params: Sequence[str] = (), replace: bool = True) -> FunctionDescriptor:
        name = normalize_name(name)
        if name.lower() in RESERVED_NAMES:
            raise ValueError(f"{name} is a control keyword and cannot be registered")
        if not callable(code):
            raise TypeError(f"{name}: function implementation must be callable")
        descriptor = FunctionDescriptor(name=name, code=code, brackets=brackets, params=tuple(params))
        if replace or descriptor.key not in self._functions:
            self._functions[descriptor.key] = descriptor
        return self._functions[descriptor.key]

    def function(self, name: str, *, brackets: bool = False, params: Sequence[str] = ()):
        """Decorator form of `register`."""
        def decorate(func):
            self.register(name, func, brackets=brackets, params=params)
            return func
        return decorate

    def bind_host(self, host: Any, replace: bool = True) -> List[str]:
        """Registers every @macro_function method of `host`. Returns the names bound."""
        bound = []
        for attr, member in inspect.getmembers(host):
            if not callable(member):
                continue
            meta = getattr(member, "_shouw_meta", None)
            if meta is None:
                func = getattr(member, "__func__", None)
                meta = getattr(func, "_shouw_meta", None) if func is not None else None
            if meta is None:
                continue
            name = meta["name"] or _camel_name(attr)
            descriptor = self.register(name, member, brackets=meta["brackets"], params=meta["params"], replace=replace)
            bound.append(descriptor.name)
        return bound

    def get(self, name: str) -> Optional[FunctionDescriptor]:
        return self._functions.get(normalize_name(name).lower())

    def unregister(self, name: str) -> None:
        del self._functions[normalize_name(name).lower()]

    def copy(self) -> "FunctionRegistry":
        other = FunctionRegistry()
        other._functions = dict(self._functions)
        return other

    @property
    def names(self) -> List[str]:
        return [d.name for d in self._functions.values()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __iter__(self) -> Iterator[FunctionDescriptor]:
        return iter(list(self._functions.values()))

    def __len__(self) -> int:
        return len(self._functions)

    def __repr__(self) -> str:
        return f"<FunctionRegistry {len(self)} functions>"


# ===================================================================
# 2. The Standard Library
# ===================================================================

class StdLib:
    """Python implementations of the built-in functions."""

    @macro_function(brackets=True, params=["condition"])
    def _check_condition(self, ctx: CallContext, args, state: ExecutionState):
        # Semicolons split arguments; a condition may legitimately contain them
        condition = ";".join(a or "" for a in args)
        # Arguments arrive unescaped; the condition language unescapes operands again
        return Outcome.ok(ctx.check_condition(ctx.escape(condition)))

    @macro_function(brackets=True, params=["name", "value"])
    def _set_var(self, ctx, args, state: ExecutionState):
        if not args or args[0] is None:
            return Outcome.error("a variable name is required")
        state.variables[args[0]] = args[1] if len(args) > 1 and args[1] is not None else ""
        return None

    @macro_function(brackets=True, params=["name"])
    def _get_var(self, ctx, args, state: ExecutionState):
        if not args or args[0] is None:
            return Outcome.error("a variable name is required")
        return state.variables.get(args[0], "")

    @macro_function(brackets=True, params=["name", "...items"])
    def _array_create(self, ctx, args, state: ExecutionState):
        if not args or args[0] is None:
            return Outcome.error("an array name is required")
        state.arrays[args[0]] = ["" if a is None else a for a in args[1:]]
        return None

    @macro_function(brackets=True, params=["name", "separator"])
    def _array_join(self, ctx, args, state: ExecutionState):
        name = args[0] if args else None
        if name is None or name not in state.arrays:
            return Outcome.error(f"array {name!r} does not exist")
        separator = args[1] if len(args) > 1 and args[1] is not None else ", "
        return separator.join(str(item) for item in state.arrays[name])

    @macro_function(brackets=True, params=["timezone"])
    def _set_timezone(self, ctx, args, state: ExecutionState):
        tz = args[0] if args else None
        if not tz:
            return Outcome.error("a timezone is required")
        try:
            ZoneInfo(tz)
        except (ZoneInfoNotFoundError, ValueError):
            return Outcome.error(f"unknown timezone {tz!r}")
        state.timezone = tz
        return None

    @macro_function()
    def _timezone(self, ctx, args, state: ExecutionState):
        return state.timezone


# ===================================================================
# 3. Document Execution
# ===================================================================

@dataclass
class Diagnostic:
    """A fatal failure, as handed to the diagnostic sink."""
    message: str
    hint: Optional[str] = None


@dataclass
class ExecutionResult:
    """The structured result of a document evaluation."""
    status: Literal['success', 'error']
    value: Optional[str] = None
    artifacts: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None
    hint: Optional[str] = None
    message_id: Any = None
    side_effects: List[Dict] = field(default_factory=list)

    @property
    def error(self) -> bool:
        return self.status == 'error'

    def format_error(self) -> str:
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.hint:
            msg = f"{msg}\n{self.hint}"
        return msg


Sender = Callable[[Optional[str], Dict[str, Any]], Any]
Reporter = Callable[[Diagnostic], Any]


class DocumentRunner:
    """Evaluates documents and hands their output to the rendering sink."""

    def __init__(
        self,
        registry: Optional[FunctionRegistry] = None,
        config: Optional[InterpreterConfig] = None,
        send: Optional[Sender] = None,
        report: Optional[Reporter] = None,
    ):
        self.config = config or InterpreterConfig()
        self.registry = registry.copy() if registry is not None else FunctionRegistry()
        if self.config.builtins:
            # Functions registered by the caller win over built-ins of the same name
            self.registry.bind_host(StdLib(), replace=False)
        self.send = send
        self.report = report

    def _format_stacktrace(self, interpreter: Interpreter) -> str:
        stack = interpreter.call_stack
        if not stack:
            return ""

        def fmt(arg):
            if arg is None:
                return "none"
            return str(arg)

        frames = []
        for frame in stack:
            args_s = " ".join(fmt(a) for a in frame.get("args") or []).strip()
            frames.append(f"({frame['name']} {args_s})" if args_s else f"({frame['name']})")
        return "Shouw stacktrace: " + " ".join(frames)

    def _format_error(self, e: Exception, interpreter: Interpreter) -> str:
        match e:
            case ShouwError():
                msg = f"{e.kind}: {e.message}"
            case _:
                msg = f"InternalError: {e}"
        st = self._format_stacktrace(interpreter)
        if st:
            msg += "\n" + st
        return msg

    async def _fail(self, e: Exception, interpreter: Interpreter, side_effects: List[Dict]) -> ExecutionResult:
        msg = self._format_error(e, interpreter)
        hint = getattr(e, "hint", None)
        side_effects.append({'topics': ['stderr'], 'message': msg})
        if self.report is not None:
            await maybe_await(self.report(Diagnostic(msg, hint)))
        return ExecutionResult(status='error', error_message=msg, hint=hint, side_effects=side_effects)

    async def handle_document(
        self,
        source: str,
        extras: Optional[Mapping[str, Any]] = None,
        state: Optional[ExecutionState] = None,
    ) -> ExecutionResult:
        """The main entry point to evaluate a document."""
        side_effects: List[Dict] = []
        interpreter = Interpreter(self.registry, self.config, state=state, extras=extras)
        try:
            text = await interpreter.run(source)
        except Exception as e:
            return await self._fail(e, interpreter, side_effects)

        artifacts = dict(interpreter.artifacts)
        message_id = None
        if (text or artifacts) and self.send is not None:
            try:
                message_id = await maybe_await(self.send(text or None, artifacts))
            except Exception as e:
                return await self._fail(e, interpreter, side_effects)

        return ExecutionResult(
            status='success',
            value=text,
            artifacts=artifacts,
            message_id=message_id,
            side_effects=side_effects,
        )
