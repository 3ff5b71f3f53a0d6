"""
Defines the core data types for the shouw runtime.

This module provides the error taxonomy, the function descriptor consumed by
the dispatcher, the per-evaluation execution state, the tagged outcome of one
function invocation and the call context handed to function implementations.
"""

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Sequence, TYPE_CHECKING

import pystache

from shouw.shouw_escape import escape, unescape

if TYPE_CHECKING:
    from shouw.shouw_interpreter import Interpreter

# =================================================================
# Errors
# =================================================================

class ShouwError(Exception):
    """Base class for every fatal evaluation error."""
    kind = "Error"

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint


class StructuralError(ShouwError):
    """A control block is missing its `$endif` / `$endelseif` or condition."""
    kind = "StructuralError"


class UsageError(ShouwError):
    """A function that requires brackets was referenced without them."""
    kind = "UsageError"


class FunctionError(ShouwError):
    """A function invocation signalled an error."""
    kind = "FunctionError"


class LimitError(ShouwError):
    """The evaluation exceeded its depth or step ceiling."""
    kind = "LimitError"


# Mustache templates for diagnostics. Triple braces: values are never HTML-escaped.
MESSAGES: Dict[str, str] = {
    "missing_endif": "Invalid $if usage: Missing $endif",
    "missing_if": "Invalid {{{keyword}}} usage: Missing $if[condition]",
    "unclosed_if": "Invalid $if usage: Condition is never closed",
    "missing_endelseif": "Invalid $elseif usage: Missing $endelseif",
    "unclosed_elseif": "Invalid $elseif usage: Condition is never closed",
    "missing_brackets": "Invalid {{{name}}} usage: Missing brackets",
    "usage_hint": "Usage: {{{usage}}}",
    "function_failed": "{{{name}}} failed{{#detail}}: {{{detail}}}{{/detail}}",
    "too_deep": "Nesting is deeper than {{{limit}}} levels",
    "too_many_steps": "Evaluation exceeded {{{limit}}} steps",
}

_renderer = pystache.Renderer(escape=lambda u: u)


def render_message(key: str, **values: Any) -> str:
    return _renderer.render(MESSAGES[key], values)


# =================================================================
# Function descriptors
# =================================================================

@dataclass(frozen=True)
class FunctionDescriptor:
    """A registered function: its name, bracket requirement and capability.

    `code` is called as `code(context, args, state)` and may be a plain
    function or a coroutine function.
    """
    name: str
    code: Callable[..., Any]
    brackets: bool = False
    params: Sequence[str] = ()

    @property
    def key(self) -> str:
        return self.name.lower()

    def usage(self) -> str:
        return f"{self.name}[{';'.join(self.params)}]"


# =================================================================
# Execution state
# =================================================================

@dataclass
class ExecutionState:
    """The state bag shared by every invocation of one evaluation."""
    variables: Dict[str, Any] = field(default_factory=dict)
    arrays: Dict[str, List[Any]] = field(default_factory=dict)
    splits: List[str] = field(default_factory=list)
    randoms: Dict[str, Any] = field(default_factory=dict)
    timezone: str = "UTC"


# =================================================================
# Outcomes
# =================================================================

OutcomeKind = Literal["value", "artifacts", "error"]


@dataclass(frozen=True)
class Outcome:
    """The structured result of one function invocation."""
    kind: OutcomeKind
    value: Optional[str] = None
    artifacts: Mapping[str, Any] = field(default_factory=dict)
    message: Optional[str] = None

    @classmethod
    def ok(cls, value: Any = None) -> "Outcome":
        return cls("value", _to_text(value))

    @classmethod
    def with_artifacts(cls, value: Any = None, **artifacts: Any) -> "Outcome":
        return cls("artifacts", _to_text(value), dict(artifacts))

    @classmethod
    def error(cls, message: Optional[str] = None, value: Any = None) -> "Outcome":
        return cls("error", _to_text(value), message=message)

    @classmethod
    def coerce(cls, raw: Any) -> "Outcome":
        """Normalizes whatever a capability returned into an Outcome."""
        if isinstance(raw, Outcome):
            return raw
        return cls.ok(raw)

    @property
    def is_error(self) -> bool:
        return self.kind == "error"

    @property
    def text(self) -> str:
        return self.value or ""


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# =================================================================
# Invocations
# =================================================================

@dataclass(frozen=True)
class Invocation:
    """One located `$name[args]` occurrence in a document."""
    name: str
    start: int
    end: int
    raw_args: Sequence[Optional[str]] = ()
    brackets: bool = False

    @property
    def args(self) -> List[Optional[str]]:
        """The arguments with literal escapes decoded; empty slots stay None."""
        return [None if a is None else unescape(a) for a in self.raw_args]

    def splice(self, document: str, replacement: str) -> str:
        return document[:self.start] + replacement + document[self.end:]


# =================================================================
# Call context
# =================================================================

class CallContext:
    """What a function implementation sees of the running evaluation."""

    def __init__(self, interpreter: 'Interpreter', name: str, extras: Optional[Mapping[str, Any]] = None):
        self.interpreter = interpreter
        self.name = name
        self.extras: Dict[str, Any] = dict(extras or {})

    @property
    def state(self) -> ExecutionState:
        return self.interpreter.state

    @property
    def data(self) -> ExecutionState:
        # Older function libraries read the state bag as `ctx.data`.
        return self.interpreter.state

    def escape(self, text: str) -> str:
        return escape(text)

    def unescape(self, text: str) -> str:
        return unescape(text)

    def check_condition(self, condition: str) -> bool:
        return self.interpreter.conditions.evaluate(condition)

    async def evaluate(self, code: str) -> str:
        """Resolves `code` with the running interpreter and returns literal text."""
        return await self.interpreter.evaluate_nested(code)

    def __getattr__(self, key: str):
        extras = self.__dict__.get("extras") or {}
        if key in extras:
            return extras[key]
        raise AttributeError(key)

    def __repr__(self) -> str:
        return f"<CallContext {self.name}>"


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value
