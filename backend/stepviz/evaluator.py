"""Restricted expression evaluation for StepViz.

Expressions are parsed with `ast` and evaluated by walking the tree with a
visitor that only understands a closed set of nodes: numeric literals, flat
numeric array literals, variable references, indexing, `.length`, the
arithmetic operators `+ - * / %`, single comparisons and parentheses.
Nothing is ever compiled or executed; any node outside that set is an
EvalError. Evaluation has no side effects on the environment it reads.
"""

import ast
import json
import math
import operator
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .classifier import strip_statement
from .errors import EvalError

Value = Union[float, bool, List[float]]

COMPARATORS: Dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}

_AST_COMPARE_OPS = {
    ast.Lt: "<",
    ast.LtE: "<=",
    ast.Gt: ">",
    ast.GtE: ">=",
    ast.Eq: "==",
    ast.NotEq: "!=",
}

_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


def type_name(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (list, tuple)):
        return "array"
    return "number"


def format_number(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == int(value) and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def format_value(value: Any) -> str:
    """Render a value the way the log and status lines show it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(format_value(v) for v in value) + "]"
    return format_number(float(value))


def to_number(value: Any, text: Optional[str] = None) -> float:
    """Coerce a value for arithmetic; booleans count as 1/0, arrays fail."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    shown = text if text is not None else format_value(value)
    raise EvalError(f"Cannot use array '{shown}' as a number", text=text)


def compare(op: str, left: Any, right: Any, text: Optional[str] = None) -> bool:
    if isinstance(left, (list, tuple)) or isinstance(right, (list, tuple)):
        raise EvalError("Arrays cannot be compared", text=text)
    return COMPARATORS[op](to_number(left), to_number(right))


def divide(left: float, right: float) -> float:
    # IEEE-754 results instead of ZeroDivisionError
    if right == 0:
        if left == 0 or math.isnan(left):
            return math.nan
        return math.copysign(math.inf, left) * math.copysign(1.0, right)
    return left / right


def remainder(left: float, right: float) -> float:
    if right == 0 or math.isinf(left) or math.isnan(left) or math.isnan(right):
        return math.nan
    return math.fmod(left, right)


def parse_literal(text: str) -> Optional[Value]:
    """Parse a number or flat numeric array literal directly.

    Returns None when `text` is neither, so the caller can fall back to the
    generic evaluator.
    """
    text = strip_statement(text)
    if _NUMBER_RE.match(text):
        return float(text)
    if text.startswith("[") and text.endswith("]"):
        try:
            items = json.loads(text)
        except (ValueError, RecursionError) as e:
            raise EvalError(f"Invalid array literal {text}", text=text) from e
        if not isinstance(items, list) or any(
            isinstance(v, bool) or not isinstance(v, (int, float)) for v in items
        ):
            raise EvalError(f"Array literals may only contain numbers: {text}", text=text)
        return [float(v) for v in items]
    return None


class SafeEvaluator(ast.NodeVisitor):
    """Evaluate a whitelisted expression tree against `env`.

    Args:
        env: mapping of variable names to values; never written to.
        source: the expression text, used to quote sub-expressions in errors.
    """

    def __init__(self, env: Mapping[str, Any], source: str):
        self.env = env
        self.source = source

    def _segment(self, node: ast.AST) -> str:
        return ast.get_source_segment(self.source, node) or ast.unparse(node)

    def visit_Expression(self, node):
        return self.visit(node.body)

    def visit_BinOp(self, node):
        left = to_number(self.visit(node.left), self._segment(node.left))
        right = to_number(self.visit(node.right), self._segment(node.right))
        if isinstance(node.op, ast.Add):
            return left + right
        if isinstance(node.op, ast.Sub):
            return left - right
        if isinstance(node.op, ast.Mult):
            return left * right
        if isinstance(node.op, ast.Div):
            return divide(left, right)
        if isinstance(node.op, ast.Mod):
            return remainder(left, right)
        raise EvalError(f"Unsupported operator in '{self._segment(node)}'", text=self._segment(node))

    def visit_UnaryOp(self, node):
        operand = to_number(self.visit(node.operand), self._segment(node.operand))
        if isinstance(node.op, ast.USub):
            return -operand
        if isinstance(node.op, ast.UAdd):
            return operand
        raise EvalError(f"Unsupported operator in '{self._segment(node)}'", text=self._segment(node))

    def visit_Compare(self, node):
        if len(node.ops) != 1 or len(node.comparators) != 1:
            raise EvalError("Chained comparisons not supported", text=self._segment(node))
        op = _AST_COMPARE_OPS.get(type(node.ops[0]))
        if op is None:
            raise EvalError(f"Unsupported comparison in '{self._segment(node)}'", text=self._segment(node))
        left = self.visit(node.left)
        right = self.visit(node.comparators[0])
        return compare(op, left, right, self._segment(node))

    def visit_Constant(self, node):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise EvalError(f"Unsupported literal {self._segment(node)}", text=self._segment(node))
        return float(node.value)

    def visit_Name(self, node):
        if node.id in self.env:
            return self.env[node.id]
        if node.id == "true":
            return True
        if node.id == "false":
            return False
        raise EvalError(f"Undefined variable '{node.id}'", text=node.id)

    def visit_List(self, node):
        values = []
        for elt in node.elts:
            v = self.visit(elt)
            if isinstance(v, (bool, list, tuple)):
                raise EvalError("Array literals may only contain numbers", text=self._segment(node))
            values.append(float(v))
        return values

    def visit_Subscript(self, node):
        text = self._segment(node)
        if isinstance(node.slice, ast.Slice):
            raise EvalError(f"Slices are not supported: '{text}'", text=text)
        target = self.visit(node.value)
        if not isinstance(target, (list, tuple)):
            raise EvalError(f"Cannot index non-array '{self._segment(node.value)}' in '{text}'", text=text)
        index = self.visit(node.slice)
        return target[check_index(target, index, text)]

    def visit_Attribute(self, node):
        text = self._segment(node)
        if node.attr != "length":
            raise EvalError(f"Unsupported property in '{text}'", text=text)
        target = self.visit(node.value)
        if not isinstance(target, (list, tuple)):
            raise EvalError(f"'{self._segment(node.value)}' has no length", text=text)
        return float(len(target))

    def generic_visit(self, node):
        raise EvalError(f"Unsupported expression: {type(node).__name__}", text=self.source)


def check_index(target: List[Any], index: Any, text: str) -> int:
    """Return `index` as an int if it addresses an element of `target`."""
    if isinstance(index, (bool, list, tuple)):
        raise EvalError(f"Invalid index in '{text}'", text=text)
    idx = float(index)
    if not idx.is_integer() or not 0 <= idx < len(target):
        raise EvalError(
            f"Index {format_number(idx)} out of bounds in '{text}' (length {len(target)})",
            text=text,
        )
    return int(idx)


def eval_expr(expr: str, env: Mapping[str, Any]) -> Value:
    """Parse and evaluate a single expression string.

    Raises:
        EvalError: on malformed input, disallowed constructs, unresolved
            variables or out-of-bounds indexing.
    """
    source = strip_statement(expr)
    if not source:
        raise EvalError("Empty expression", text=expr)
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as e:
        col = int(getattr(e, "offset", None) or 1)
        raise EvalError(f"Syntax error in expression '{source}'", column=col, text=source) from e
    except (RecursionError, MemoryError) as e:
        raise EvalError("Expression is too deeply nested to evaluate", text=source[:80]) from e
    except ValueError as e:
        raise EvalError(f"Cannot parse expression: {e}", text=source[:80]) from e

    # Explicit boundary for the constructs most likely to appear by mistake
    for node in ast.walk(tree):
        if isinstance(node, ast.Call):
            raise EvalError(f"Function calls are not supported: '{source}'", text=source)
        if isinstance(node, (ast.BoolOp, ast.IfExp, ast.Lambda, ast.NamedExpr)):
            raise EvalError(f"Unsupported expression element: {type(node).__name__}", text=source)

    try:
        return SafeEvaluator(env, source).visit(tree)
    except EvalError:
        raise
    except Exception as e:
        raise EvalError(f"Cannot evaluate '{source}': {e}", text=source) from e
