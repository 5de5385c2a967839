"""Stepped execution engine for StepViz scripts.

The engine walks a script one classified line at a time and, after every
state mutation, hands an immutable `Snapshot` to its observer before
continuing. Runs are driven through a generator (`Engine.stream`): every
`yield` is a suspension point, and the pacing delay between snapshots is an
interruptible wait on the engine's cancel signal, so `Engine.cancel()` takes
effect at the next suspension point.

Control flow is deliberately narrow: one `for` loop at a time with a flat
body, and `if` statements whose consequence is the single following
statement. Unrecognized lines are skipped rather than treated as errors.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence

from .classifier import (
    Assignment,
    Blank,
    Comment,
    Conditional,
    Declaration,
    LoopHeader,
    classify,
    is_brace_only,
)
from .errors import EvalError, LimitExceeded, StepVizError, SyntaxRejected
from .evaluator import check_index, compare, eval_expr, format_value, parse_literal, to_number
from .loops import BodyLine, extract_body
from .snapshot import (
    CANCELLED,
    COMPLETED,
    FAILED,
    ArrayView,
    RunOutcome,
    RunResult,
    Snapshot,
    VariableRecord,
)
from .validator import validate

logger = logging.getLogger(__name__)

IDLE = "idle"
RUNNING = "running"

MIN_SPEED = 1
MAX_SPEED = 100

SUCCESS_MESSAGE = "✓ Execution completed successfully"


def pacing_delay(speed: Optional[float]) -> float:
    """Map a speed setting in [1, 100] to a per-step delay in seconds.

    `None` disables pacing entirely.
    """
    if speed is None:
        return 0.0
    speed = min(max(float(speed), MIN_SPEED), MAX_SPEED)
    return (2000 - 18 * speed) / 1000.0


def truthy(value: Any) -> bool:
    if isinstance(value, (list, tuple)):
        return True
    if isinstance(value, float) and value != value:
        return False
    return bool(value)


@dataclass
class LoopFrame:
    var: str
    start: float
    cond_var: str
    op: str
    bound: str
    step: float
    body: List[BodyLine]
    end_index: int
    iterations: int = 0


class _Cancelled(Exception):
    pass


SnapshotStream = Generator[Snapshot, None, RunOutcome]


class Engine:
    """Instrumented interpreter for one run at a time.

    Tunable attributes (defaults are set in __init__):
    - max_steps: statements executed per run before failing with STEP_LIMIT
    - max_loop: iterations of a single loop before failing with LOOP_LIMIT

    Run state (`env`, `cursor`, `log`, `frame`) belongs to the engine for
    the duration of a run; observers only ever see copies in snapshots.
    """

    def __init__(self):
        self.max_steps = 10000
        self.max_loop = 1000
        self._cancel = threading.Event()
        self.state = IDLE
        self.reset()

    # --- Run control ---------------------------------------------------
    def reset(self) -> None:
        """Clear all transient state back to Idle."""
        if self.state == RUNNING:
            raise RuntimeError("Cannot reset while a run is in progress; cancel it first")
        self.env: Dict[str, Any] = {}
        self.cursor = -1
        self.log: List[str] = []
        self.frame: Optional[LoopFrame] = None
        self.highlight = -1
        self._array_name: Optional[str] = None
        # const name -> index of the line that declared it
        self._consts: Dict[str, int] = {}
        self._steps = 0
        self._seq = 0
        self._delay = 0.0
        self._cancel.clear()
        self.state = IDLE

    def cancel(self) -> None:
        """Ask the current run to stop at its next suspension point."""
        self._cancel.set()

    def run(
        self,
        script: str,
        speed: Optional[float] = None,
        sink: Optional[Callable[[Snapshot], Any]] = None,
    ) -> RunResult:
        """Execute `script`, forwarding every snapshot to `sink`.

        Returns a RunResult with all snapshots and the run's outcome. Script
        errors never propagate; they end the run with a failed outcome.
        """
        snapshots: List[Snapshot] = []
        stream = self.stream(script, speed)
        while True:
            try:
                snap = next(stream)
            except StopIteration as stop:
                outcome = stop.value
                break
            snapshots.append(snap)
            if sink is not None:
                sink(snap)
        return RunResult(outcome=outcome, snapshots=snapshots, log=list(self.log))

    def stream(self, script: str, speed: Optional[float] = None) -> SnapshotStream:
        """Yield one Snapshot per suspension point; return the RunOutcome.

        A script rejected by the validator returns a failed outcome without
        yielding anything.
        """
        if self.state == RUNNING:
            raise RuntimeError("A run is already in progress")
        self.reset()
        lines = script.splitlines()
        try:
            validate(script)
        except SyntaxRejected as e:
            self.state = FAILED
            message = f"✗ {e}"
            self.log.append(message)
            logger.info("script rejected: %s", e.construct)
            error = {"code": e.code, "message": str(e), "construct": e.construct, "hint": f"Use {e.suggestion}"}
            return RunOutcome(FAILED, message, error)

        self.state = RUNNING
        self._delay = pacing_delay(speed)
        self.log.append("Starting execution...")
        logger.info("run started (%d lines, delay %.3fs)", len(lines), self._delay)
        try:
            # top-level positions coincide with line indices
            top = [BodyLine(i, text) for i, text in enumerate(lines)]
            yield from self._exec_sequence(lines, top, in_body=False)
        except _Cancelled:
            self.state = CANCELLED
            logger.info("run cancelled after %d snapshots", self._seq)
            return RunOutcome(CANCELLED, "Execution cancelled")
        except StepVizError as e:
            self.state = FAILED
            error = self._error_dict(e, lines)
            message = f"✗ Error: {e}"
            self.log.append(message)
            self.frame = None
            self.cursor = -1
            self.highlight = -1
            logger.info("run failed at line %s: %s", error.get("line"), e)
            yield self._snapshot(FAILED, message=message, error=error)
            return RunOutcome(FAILED, message, error)
        except GeneratorExit:
            # consumer closed the stream early
            self.state = CANCELLED
            raise

        self.state = COMPLETED
        self.cursor = -1
        self.highlight = -1
        self.log.append("✓ Execution completed!")
        logger.info("run completed in %d steps", self._steps)
        yield self._snapshot(COMPLETED, message=SUCCESS_MESSAGE)
        return RunOutcome(COMPLETED, SUCCESS_MESSAGE)

    # --- Snapshots -----------------------------------------------------
    def _snapshot(self, event: str, *, message: Optional[str] = None, error: Optional[Dict[str, Any]] = None) -> Snapshot:
        self._seq += 1
        array = None
        if self._array_name is not None and isinstance(self.env.get(self._array_name), list):
            array = ArrayView.of(self._array_name, self.env[self._array_name])
        return Snapshot(
            seq=self._seq,
            event=event,
            line=self.cursor,
            status=self.state,
            variables=tuple(VariableRecord.of(name, value) for name, value in self.env.items()),
            array=array,
            highlight=self.highlight,
            log=tuple(self.log),
            message=message,
            error=error,
        )

    def _suspend(self, event: str) -> Generator[Snapshot, None, None]:
        snap = self._snapshot(event)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("%s", describe(snap))
        yield snap
        if self._delay:
            self._cancel.wait(self._delay)
        if self._cancel.is_set():
            raise _Cancelled()

    def _error_dict(self, exc: StepVizError, lines: Sequence[str]) -> Dict[str, Any]:
        err: Dict[str, Any] = {"code": exc.code, "message": str(exc)}
        if 0 <= self.cursor < len(lines):
            err["line"] = self.cursor + 1
            err["context"] = {"line_text": lines[self.cursor].strip()}
        if isinstance(exc, EvalError):
            if exc.text:
                err["expression"] = exc.text
            if exc.column:
                err["column"] = exc.column
        if isinstance(exc, LimitExceeded):
            err["hint"] = "Check the loop condition and increment."
        return err

    # --- Statement execution -------------------------------------------
    def _visit(self, line: BodyLine, in_body: bool) -> None:
        self.cursor = line.index
        if in_body:
            self.log.append(f"  Body: {line.text.strip()}")
        else:
            self.log.append(f"Line {line.index + 1}: {line.text.strip()}")
        self._steps += 1
        if self._steps > self.max_steps:
            raise LimitExceeded(f"Step limit of {self.max_steps} exceeded", code="STEP_LIMIT")

    def _bind(self, name: str, value: Any, line: Optional[int] = None) -> None:
        # a const may only be re-bound by its own declaration line (loop bodies)
        if name in self._consts and self._consts[name] != line:
            raise EvalError(f"Cannot reassign const '{name}'", text=name)
        self.env[name] = value
        if isinstance(value, list):
            self._array_name = name

    def _exec_sequence(self, lines: Sequence[str], seq: List[BodyLine], in_body: bool):
        pos = 0
        while pos < len(seq):
            stmt = classify(seq[pos].text)
            if isinstance(stmt, (Blank, Comment)):
                pos += 1
                continue
            self._visit(seq[pos], in_body)
            if isinstance(stmt, Declaration):
                yield from self._declare(stmt)
            elif isinstance(stmt, Assignment):
                yield from self._assign(stmt, "assign")
            elif isinstance(stmt, Conditional):
                pos = yield from self._conditional(lines, seq, pos, stmt, in_body)
                continue
            elif isinstance(stmt, LoopHeader) and not in_body:
                end_index = yield from self._run_loop(lines, seq[pos].index, stmt)
                pos = end_index + 1
                continue
            # unrecognized lines and loop headers inside a body are skipped
            pos += 1

    def _declare(self, stmt: Declaration):
        value = parse_literal(stmt.expr)
        if value is None:
            value = eval_expr(stmt.expr, self.env)
        if stmt.keyword == "const":
            self._consts.setdefault(stmt.name, self.cursor)
        self._bind(stmt.name, value, line=self.cursor)
        yield from self._suspend("declare")

    def _assign(self, stmt: Assignment, event: str):
        value = eval_expr(stmt.expr, self.env)
        if stmt.index is not None:
            text = f"{stmt.name}[{stmt.index}]"
            target = self.env.get(stmt.name)
            if not isinstance(target, list):
                raise EvalError(f"Cannot index non-array '{stmt.name}' in '{text}'", text=text)
            position = check_index(target, eval_expr(stmt.index, self.env), text)
            if isinstance(value, (bool, list)):
                raise EvalError(f"Array elements must be numbers: '{stmt.expr}'", text=stmt.expr)
            updated = list(target)
            updated[position] = float(value)
            value = updated
        self._bind(stmt.name, value)
        yield from self._suspend(event)

    def _conditional(self, lines: Sequence[str], seq: List[BodyLine], pos: int, stmt: Conditional, in_body: bool):
        """Run the single statement following an `if`; return the next position.

        The consequence is consumed whether or not the condition holds. A loop
        in that position is never run, and its whole block is consumed with it.
        """
        result = eval_expr(stmt.condition, self.env)
        nxt = pos + 1
        while nxt < len(seq) and is_brace_only(seq[nxt].text):
            nxt += 1
        if nxt >= len(seq):
            return nxt
        consequence = classify(seq[nxt].text)
        if truthy(result):
            self._visit(seq[nxt], in_body)
            if isinstance(consequence, Assignment):
                yield from self._assign(consequence, "condition")
        if isinstance(consequence, LoopHeader) and not in_body:
            _, end_index = extract_body(lines, seq[nxt].index)
            return end_index + 1
        return nxt + 1

    def _run_loop(self, lines: Sequence[str], index: int, header: LoopHeader):
        """Execute a loop; return the index of its closing line."""
        body, end_index = extract_body(lines, index)
        start = to_number(eval_expr(header.start, self.env), header.start)
        frame = LoopFrame(
            var=header.var,
            start=start,
            cond_var=header.cond_var,
            op=header.op,
            bound=header.bound,
            step=header.step,
            body=body,
            end_index=end_index,
        )
        self.frame = frame
        value = start
        while self._loop_continues(frame, value):
            frame.iterations += 1
            if frame.iterations > self.max_loop:
                raise LimitExceeded(f"Loop iterations limited to {self.max_loop}", code="LOOP_LIMIT")
            self._bind(frame.var, value)
            self.highlight = self._highlight_for(value)
            self.cursor = index
            yield from self._suspend("bind")

            yield from self._exec_sequence(lines, frame.body, in_body=True)

            value = to_number(self.env[frame.var], frame.var) + frame.step
            self._bind(frame.var, value)
            self.cursor = index
            yield from self._suspend("increment")
        self.frame = None
        self.highlight = -1
        return end_index

    def _highlight_for(self, value: float) -> int:
        """Array cell to highlight for a loop value, or -1 when it addresses none."""
        if not value.is_integer() or value < 0:
            return -1
        target = self.env.get(self._array_name) if self._array_name is not None else None
        if isinstance(target, list) and value >= len(target):
            return -1
        return int(value)

    def _loop_continues(self, frame: LoopFrame, value: float) -> bool:
        scope = dict(self.env)
        scope[frame.var] = value
        if frame.cond_var not in scope:
            raise EvalError(f"Undefined variable '{frame.cond_var}'", text=frame.cond_var)
        bound = eval_expr(frame.bound, scope)
        text = f"{frame.cond_var} {frame.op} {frame.bound}"
        return compare(frame.op, scope[frame.cond_var], bound, text)


def describe(snapshot: Snapshot) -> str:
    """One-line summary of a snapshot for debug logging."""
    values = ", ".join(f"{v.name}={format_value(v.value)}" for v in snapshot.variables)
    return f"#{snapshot.seq} {snapshot.event} line={snapshot.line + 1} {values}"
