"""Pre-execution gate that rejects foreign-dialect syntax.

The script language deliberately looks like a C-family scripting language, so
scripts written for a Python-like dialect would otherwise run and silently
produce wrong answers. `validate` scans the raw text before anything runs.
"""

import re
from typing import List, NamedTuple, Optional

from .errors import SyntaxRejected


class Rule(NamedTuple):
    pattern: "re.Pattern[str]"
    construct: str
    suggestion: str
    message: str


RULES: List[Rule] = [
    Rule(
        re.compile(r"\bself\."),
        "self.",
        "plain variables",
        "Python syntax detected. Please use JavaScript syntax only.",
    ),
    Rule(
        re.compile(r"\bdef\s"),
        "def",
        "top-level statements",
        "Python syntax detected. Please use JavaScript syntax only.",
    ),
    Rule(
        re.compile(r"\bclass\s"),
        "class",
        "top-level statements",
        "Python syntax detected. Please use JavaScript syntax only.",
    ),
    Rule(
        re.compile(r"\b(True|False|None)\b"),
        "True/False/None",
        "true, false, null",
        "Python keywords detected. Use JavaScript: true, false, null",
    ),
    Rule(
        re.compile(r"\bprint\s*\("),
        "print()",
        "console.log() or variables",
        "Use JavaScript syntax. Replace print() with console.log() or variables",
    ),
    Rule(
        re.compile(r"\brange\("),
        "range()",
        "for (let i = 0; i < n; i++)",
        "Python range() not supported. Use: for (let i = 0; i < n; i++)",
    ),
]


def find_violation(script: str) -> Optional[Rule]:
    """Return the first rule matched by `script`, or None if it is clean."""
    for rule in RULES:
        if rule.pattern.search(script):
            return rule
    return None


def validate(script: str) -> None:
    """Raise SyntaxRejected if `script` contains a foreign-dialect construct."""
    rule = find_violation(script)
    if rule is not None:
        raise SyntaxRejected(rule.message, construct=rule.construct, suggestion=rule.suggestion)
