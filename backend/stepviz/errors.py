"""Error types raised by the StepViz language core.

Every error carries a short machine-readable ``code`` so the engine and the
HTTP layer can report failures in one stable shape.
"""

from typing import Optional


class StepVizError(Exception):
    """Base class for failures that end a run."""

    code = "ERROR"


class SyntaxRejected(StepVizError):
    """Raised by the validator when a script uses foreign-dialect syntax.

    Attributes:
        construct: the offending construct as it appears in the script
        suggestion: the accepted native replacement
    """

    code = "SYNTAX_REJECTED"

    def __init__(self, message: str, *, construct: str, suggestion: str):
        super().__init__(message)
        self.construct = construct
        self.suggestion = suggestion


class EvalError(StepVizError):
    """Raised when an expression cannot be evaluated.

    Covers unresolved variables, out-of-bounds indexing and malformed
    expressions.

    Attributes:
        column: optional 1-based column where the error occurred within the expression
        text: optional offending expression text
    """

    code = "RUNTIME_ERROR"

    def __init__(self, message: str, *, column: Optional[int] = None, text: Optional[str] = None):
        super().__init__(message)
        self.column = column
        self.text = text


class LimitExceeded(StepVizError):
    """Raised when a run exceeds its step budget or a loop its iteration cap."""

    def __init__(self, message: str, *, code: str = "STEP_LIMIT"):
        super().__init__(message)
        self.code = code
