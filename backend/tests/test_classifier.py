"""Unit tests for per-line statement classification."""

import pytest

from backend.stepviz.classifier import (
    Assignment,
    Blank,
    Comment,
    Conditional,
    Declaration,
    LoopHeader,
    Unrecognized,
    classify,
    match_loop_header,
    strip_statement,
)


def test_blank_and_comment():
    assert classify("") == Blank()
    assert classify("    ") == Blank()
    assert classify("// note") == Comment("note")


def test_declarations():
    assert classify("let x = 5;") == Declaration("x", "5", "let")
    assert classify("  const y = x + 1; // trailing") == Declaration("y", "x + 1", "const")
    assert classify("var arr = [1, 2]") == Declaration("arr", "[1, 2]", "var")


def test_loop_header_three_clause():
    stmt = classify("for (let i = 0; i < arr.length; i++) {")
    assert stmt == LoopHeader(
        var="i",
        start="0",
        cond_var="i",
        op="<",
        bound="arr.length",
        increment="++",
        step=1.0,
    )


def test_loop_header_increments():
    assert match_loop_header("for (let i = 5; i > 0; i--) {").step == -1.0
    stmt = match_loop_header("for (let i = 10; i >= 0; i -= 2) {")
    assert stmt.increment == "-=2"
    assert stmt.step == -2.0
    assert match_loop_header("for (i = 0; i <= n; i += 3)").step == 3.0


def test_loop_header_with_body_on_same_line():
    stmt = classify("for (let i = 0; i < 3; i++) { s = s + i; }")
    assert isinstance(stmt, LoopHeader)
    assert stmt.var == "i"
    assert stmt.bound == "3"
    assert stmt.step == 1.0


@pytest.mark.parametrize(
    "line",
    [
        "for (let i = 0; i < n; j++) {",
        "for i in range(3):",
        "for (const x of arr) {",
        "for (let i = 0; i < n) {",
    ],
)
def test_other_loop_forms_unrecognized(line):
    assert isinstance(classify(line), Unrecognized)


def test_conditional():
    assert classify("if (current > max) {") == Conditional("current > max")
    assert classify("if (x == 1)") == Conditional("x == 1")


def test_assignments():
    assert classify("sum = sum + arr[i];") == Assignment("sum", "sum + arr[i]")
    assert classify("arr[2] = 7;") == Assignment("arr", "7", "2")
    assert classify("total += x;") == Assignment("total", "total + (x)")
    assert classify("arr[i] *= 2") == Assignment("arr", "arr[i] * (2)", "i")


@pytest.mark.parametrize("line", ["x == 3", "}", "console.log(x);", "let x", "x <= 2"])
def test_unrecognized(line):
    assert isinstance(classify(line), Unrecognized)


def test_strip_statement():
    assert strip_statement("  x = 1; // set x ") == "x = 1"
    assert strip_statement("y = 2;;") == "y = 2"
