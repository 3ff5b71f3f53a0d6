"""
Interpreter settings, loaded from YAML with environment overrides.
"""
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml


@dataclass(frozen=True)
class InterpreterConfig:
    """Limits and defaults for one evaluation."""
    # Nesting of argument / condition resolution
    max_depth: int = 64
    # Invocations plus control blocks resolved per evaluation
    max_steps: int = 10000
    timezone: str = "UTC"
    debug: bool = False
    # Register the StdLib built-ins ($checkCondition, $setVar, ...)
    builtins: bool = True

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "InterpreterConfig":
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**data)

    def with_env(self, environ: Optional[Mapping[str, str]] = None) -> "InterpreterConfig":
        """Applies SHOUW_DEBUG / SHOUW_MAX_DEPTH / SHOUW_MAX_STEPS."""
        env = os.environ if environ is None else environ
        changes: dict = {}
        if env.get("SHOUW_DEBUG"):
            changes["debug"] = env["SHOUW_DEBUG"].strip().lower() not in ("0", "false", "no", "")
        if env.get("SHOUW_MAX_DEPTH"):
            changes["max_depth"] = int(env["SHOUW_MAX_DEPTH"])
        if env.get("SHOUW_MAX_STEPS"):
            changes["max_steps"] = int(env["SHOUW_MAX_STEPS"])
        return replace(self, **changes) if changes else self


def load_config(path: Optional[Union[str, Path]] = None, environ: Optional[Mapping[str, str]] = None) -> InterpreterConfig:
    """Reads a YAML config file (if given) and applies environment overrides."""
    data = None
    if path is not None:
        text = Path(path).read_text(encoding="utf-8")
        data = yaml.safe_load(text)
        if data is not None and not isinstance(data, Mapping):
            raise ValueError(f"{path}: expected a mapping at the top level")
    return InterpreterConfig.from_mapping(data).with_env(environ)
