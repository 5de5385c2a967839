"""Statement classification for StepViz scripts.

Lines are matched against a short, prioritized list of structural patterns
rather than parsed with a grammar. Each matcher is a plain function returning
a statement or None, so they can be tested one at a time.
"""

import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

_NAME = r"[A-Za-z_]\w*"


@dataclass(frozen=True)
class Blank:
    pass


@dataclass(frozen=True)
class Comment:
    text: str


@dataclass(frozen=True)
class Declaration:
    name: str
    expr: str
    keyword: str = "let"


@dataclass(frozen=True)
class LoopHeader:
    var: str
    start: str
    cond_var: str
    op: str
    bound: str
    increment: str
    step: float


@dataclass(frozen=True)
class Assignment:
    name: str
    expr: str
    index: Optional[str] = None


@dataclass(frozen=True)
class Conditional:
    condition: str


@dataclass(frozen=True)
class Unrecognized:
    text: str


Statement = Union[Blank, Comment, Declaration, LoopHeader, Assignment, Conditional, Unrecognized]


def strip_statement(line: str) -> str:
    """Drop an inline `//` comment and a trailing `;` from a statement."""
    text = line.strip()
    if "//" in text:
        text = text.split("//", 1)[0].rstrip()
    while text.endswith(";"):
        text = text[:-1].rstrip()
    return text


def is_brace_only(line: str) -> bool:
    return strip_statement(line) in ("{", "}", "")


_DECL_RE = re.compile(rf"^(let|var|const)\s+({_NAME})\s*=(?!=)\s*(.+)$")

_FOR_RE = re.compile(
    rf"^for\s*\(\s*(?:let\s+|var\s+)?({_NAME})\s*=\s*(.+?)\s*;"
    rf"\s*({_NAME})\s*(<=|>=|==|!=|<|>)\s*(.+?)\s*;"
    rf"\s*({_NAME})\s*(\+\+|--|[+-]=\s*\d*\.?\d+)\s*\)\s*(?:\{{.*)?$"
)

_IF_RE = re.compile(r"^if\s*\((.+)\)\s*\{?$")

_ASSIGN_RE = re.compile(rf"^({_NAME})\s*(?:\[(.+)\])?\s*([-+*/]?=)(?!=)\s*(.+)$")


def match_declaration(text: str) -> Optional[Declaration]:
    m = _DECL_RE.match(text)
    if not m:
        return None
    return Declaration(name=m.group(2), expr=m.group(3).strip(), keyword=m.group(1))


def match_loop_header(text: str) -> Optional[LoopHeader]:
    """Match the three-clause `for (init; compare; increment)` header.

    The increment clause must advance the variable the header initializes;
    anything else is left for the Unrecognized fallback.
    Statements may follow the opening brace on the header line itself.
    """
    m = _FOR_RE.match(text)
    if not m:
        return None
    var, start, cond_var, op, bound, inc_var, increment = m.groups()
    if inc_var != var:
        return None
    increment = increment.replace(" ", "")
    if increment == "++":
        step = 1.0
    elif increment == "--":
        step = -1.0
    else:
        step = float(increment[2:])
        if increment.startswith("-"):
            step = -step
    return LoopHeader(
        var=var,
        start=start,
        cond_var=cond_var,
        op=op,
        bound=bound,
        increment=increment,
        step=step,
    )


def match_conditional(text: str) -> Optional[Conditional]:
    m = _IF_RE.match(text)
    if not m:
        return None
    return Conditional(condition=m.group(1).strip())


def match_assignment(text: str) -> Optional[Assignment]:
    """Match `x = e`, `x[i] = e` and the compound forms `x += e` etc.

    Compound forms are rewritten to `x op (e)` so they read the pre-update
    value through the same evaluation path as plain assignments.
    """
    m = _ASSIGN_RE.match(text)
    if not m:
        return None
    name, index, op, expr = m.groups()
    expr = expr.strip()
    if op != "=":
        target = f"{name}[{index}]" if index is not None else name
        expr = f"{target} {op[0]} ({expr})"
    return Assignment(name=name, expr=expr, index=index.strip() if index is not None else None)


MATCHERS: List[Callable[[str], Optional[Statement]]] = [
    match_declaration,
    match_loop_header,
    match_conditional,
    match_assignment,
]


def classify(line: str) -> Statement:
    """Return the statement kind of a single source line."""
    raw = line.strip()
    if not raw:
        return Blank()
    if raw.startswith("//"):
        return Comment(raw[2:].strip())
    text = strip_statement(raw)
    if not text:
        return Blank()
    for matcher in MATCHERS:
        stmt = matcher(text)
        if stmt is not None:
            return stmt
    return Unrecognized(raw)
