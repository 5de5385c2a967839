"""Loop body extraction.

A loop body runs from its header to the line where the brace depth returns
to zero. The body is returned flat: braces inside it only matter for finding
the end, and nested statements are not grouped.
"""

from typing import List, NamedTuple, Sequence, Tuple

from .classifier import is_brace_only, strip_statement
from .errors import EvalError


class BodyLine(NamedTuple):
    index: int
    text: str


def _brace_delta(line: str) -> int:
    text = strip_statement(line)
    return text.count("{") - text.count("}")


def _header_statements(header: str, closed: bool) -> List[str]:
    # statements written after the opening brace of the header itself
    text = strip_statement(header)
    brace = text.find("{")
    if brace < 0:
        return []
    tail = text[brace + 1:]
    if closed:
        tail = tail[:tail.rfind("}")]
    return [part.strip() for part in tail.split(";") if part.strip()]


def extract_body(lines: Sequence[str], header_index: int) -> Tuple[List[BodyLine], int]:
    """Return (body_lines, end_index) for the loop whose header is at `header_index`.

    Body lines keep their source index so the engine can point its cursor at
    them. Blank lines, comments and lines holding only a brace are dropped.
    The opening brace may sit on the header or on a line of its own, and a
    whole loop may be written on one line (`for (...) { a; b; }`); statements
    on the header line report the header's index.

    Raises:
        EvalError: if the block is never closed.
    """
    depth = 0
    opened = False
    end_index = -1
    for j in range(header_index, len(lines)):
        delta = _brace_delta(lines[j])
        if "{" in strip_statement(lines[j]):
            opened = True
        depth += delta
        if opened and depth <= 0:
            end_index = j
            break
    if end_index < 0:
        raise EvalError("Missing closing '}' for loop", text=lines[header_index].strip())

    body = [
        BodyLine(header_index, text)
        for text in _header_statements(lines[header_index], closed=end_index == header_index)
    ]
    for j in range(header_index + 1, end_index):
        text = lines[j].strip()
        if is_brace_only(text) or text.startswith("//"):
            continue
        body.append(BodyLine(j, text))
    return body, end_index
