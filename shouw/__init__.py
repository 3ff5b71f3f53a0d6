from shouw.shouw_config import InterpreterConfig, load_config
from shouw.shouw_conditions import ConditionEvaluator, check_condition
from shouw.shouw_datatypes import (
    CallContext, ExecutionState, FunctionDescriptor, FunctionError, LimitError,
    Outcome, ShouwError, StructuralError, UsageError,
)
from shouw.shouw_escape import escape, unescape
from shouw.shouw_interpreter import Interpreter
from shouw.shouw_runtime import (
    Diagnostic, DocumentRunner, ExecutionResult, FunctionRegistry, StdLib, macro_function,
)

__all__ = [
    "CallContext", "ConditionEvaluator", "Diagnostic", "DocumentRunner", "ExecutionResult",
    "ExecutionState", "FunctionDescriptor", "FunctionError", "FunctionRegistry", "Interpreter",
    "InterpreterConfig", "LimitError", "Outcome", "ShouwError", "StdLib", "StructuralError",
    "UsageError", "check_condition", "escape", "load_config", "macro_function", "unescape",
]
