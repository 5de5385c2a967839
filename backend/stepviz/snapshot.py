"""Immutable views of interpreter state handed to observers."""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .evaluator import format_number, type_name

COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"


def freeze(value: Any) -> Any:
    """Copy a value so later mutation of the environment cannot reach it."""
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return value


def jsonable(value: Any) -> Any:
    """Convert a value to plain JSON types.

    Integral floats become ints and non-finite floats their display strings,
    since strict JSON has no Infinity or NaN.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return format_number(value)
        if value.is_integer():
            return int(value)
    return value


@dataclass(frozen=True)
class VariableRecord:
    name: str
    value: Any
    type: str

    @classmethod
    def of(cls, name: str, value: Any) -> "VariableRecord":
        return cls(name=name, value=freeze(value), type=type_name(value))

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": jsonable(self.value), "type": self.type}


@dataclass(frozen=True)
class ArrayView:
    """Contents of the array variable most recently written, with index labels."""

    name: str
    cells: Tuple[Tuple[int, Any], ...]

    @classmethod
    def of(cls, name: str, values: Any) -> "ArrayView":
        return cls(name=name, cells=tuple(enumerate(values)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "cells": [{"index": i, "value": jsonable(v)} for i, v in self.cells],
        }


@dataclass(frozen=True)
class Snapshot:
    seq: int
    event: str
    line: int
    status: str
    variables: Tuple[VariableRecord, ...]
    array: Optional[ArrayView]
    highlight: int
    log: Tuple[str, ...]
    message: Optional[str] = None
    error: Optional[Dict[str, Any]] = None

    def value_of(self, name: str) -> Any:
        for record in self.variables:
            if record.name == name:
                return record.value
        raise KeyError(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "event": self.event,
            "line": self.line,
            "status": self.status,
            "variables": [v.to_dict() for v in self.variables],
            "array": self.array.to_dict() if self.array else None,
            "highlight": self.highlight,
            "log": list(self.log),
            "message": self.message,
            "error": dict(self.error) if self.error else None,
        }


@dataclass(frozen=True)
class RunOutcome:
    """Terminal result of a run: completed, failed (with error) or cancelled."""

    status: str
    message: str
    error: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.status == COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "message": self.message, "error": self.error}


@dataclass
class RunResult:
    outcome: RunOutcome
    snapshots: List[Snapshot] = field(default_factory=list)
    log: List[str] = field(default_factory=list)

    @property
    def final(self) -> Optional[Snapshot]:
        return self.snapshots[-1] if self.snapshots else None

    @property
    def variables(self) -> Dict[str, Any]:
        if self.final is None:
            return {}
        return {v.name: v.value for v in self.final.variables}

    def to_dict(self) -> Dict[str, Any]:
        final = self.final
        return {
            "status": self.outcome.status,
            "output": self.outcome.message,
            "log": list(self.log),
            "variables": [v.to_dict() for v in final.variables] if final else [],
            "snapshots": [s.to_dict() for s in self.snapshots],
            "errors": self.outcome.error,
        }
