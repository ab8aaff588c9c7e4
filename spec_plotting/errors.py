"""
Module: errors.py
Purpose:
    Structured error taxonomy shared by the parser, evaluator, validators, transform
    pipeline and batch runner:
      - ParseError: malformed expression text (with position)
      - EvalError family: UnknownFunction, UnknownColumn, TypeMismatch, DomainError
      - ConfigError / ValidationError: bad chart or document configuration
      - LoadError / RenderError: failures reported by the collaborators
      - PipelineError: stage-tagged wrapper raised by apply_transforms()

Design:
    - Every error carries enough context (field path, column, expression, suggestions)
      to be displayed without re-deriving anything.
    - to_dict() gives a JSON-friendly view for reports.

Usage:
    from spec_plotting.errors import ParseError, UnknownColumn, PipelineError
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence


class EngineError(Exception):
    kind = "EngineError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class ParseError(EngineError):
    kind = "ParseError"

    def __init__(self, message: str, text: str = "", position: Optional[int] = None):
        if position is not None:
            message = f"{message} at position {position}"
        super().__init__(message)
        self.text = text
        self.position = position

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out.update({"expression": self.text, "position": self.position})
        return out


class EvalError(EngineError):
    kind = "EvalError"


class UnknownFunction(EvalError):
    kind = "UnknownFunction"

    def __init__(self, name: str, known: Sequence[str] = ()):
        super().__init__(f"Unknown function '{name}'")
        self.name = name
        self.known = list(known)


class UnknownColumn(EvalError):
    """
    A referenced column is absent from the schema. `available` lists every column in
    schema order; `suggestions` holds the closest names, best first.
    """
    kind = "UnknownColumn"

    def __init__(self, requested: str, available: Sequence[str] = (),
                 suggestions: Sequence[str] = (), field_path: Optional[str] = None):
        msg = f"Column '{requested}' not found"
        if suggestions:
            msg += f". Did you mean '{suggestions[0]}'?"
        super().__init__(msg)
        self.requested = requested
        self.available = list(available)
        self.suggestions = list(suggestions)
        self.field_path = field_path

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out.update({
            "requested": self.requested,
            "available": self.available,
            "suggestions": self.suggestions,
            "field_path": self.field_path,
        })
        return out


class TypeMismatch(EvalError):
    kind = "TypeMismatch"


class DomainError(EvalError):
    kind = "DomainError"


class ConfigError(EngineError):
    kind = "ConfigError"

    def __init__(self, message: str, field_path: Optional[str] = None):
        super().__init__(message)
        self.field_path = field_path

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["field_path"] = self.field_path
        return out


class ValidationError(EngineError):
    """Raised when a chart's ValidationReport is not empty; keeps every issue."""
    kind = "ValidationError"

    def __init__(self, issues: List[Any]):
        first = issues[0].message if issues else "validation failed"
        extra = f" (+{len(issues) - 1} more)" if len(issues) > 1 else ""
        super().__init__(f"{first}{extra}")
        self.issues = list(issues)

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["issues"] = [i.model_dump() if hasattr(i, "model_dump") else i for i in self.issues]
        return out


class LoadError(EngineError):
    kind = "LoadError"

    def __init__(self, message: str, location: Optional[str] = None):
        super().__init__(message)
        self.location = location


class RenderError(EngineError):
    kind = "RenderError"


class PipelineError(EngineError):
    """Wraps the first failure of a transform stage (filter, derive, aggregate, sort, limit)."""
    kind = "PipelineError"

    def __init__(self, stage: str, cause: Exception, expression: Optional[str] = None,
                 column: Optional[str] = None):
        where = f" in '{expression}'" if expression else (f" on column '{column}'" if column else "")
        super().__init__(f"[{stage}] {type(cause).__name__}{where}: {cause}")
        self.stage = stage
        self.cause = cause
        self.expression = expression
        self.column = column

    @property
    def cause_kind(self) -> str:
        return getattr(self.cause, "kind", type(self.cause).__name__)

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out.update({
            "stage": self.stage,
            "cause": self.cause_kind,
            "expression": self.expression,
            "column": self.column,
        })
        return out
