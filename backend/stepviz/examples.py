"""Built-in teaching scripts offered by the editor."""

from typing import Dict

EXAMPLES: Dict[str, str] = {
    "array": """// Array Sum Example
let arr = [5, 2, 8, 1, 9];
let sum = 0;

for (let i = 0; i < arr.length; i++) {
  sum = sum + arr[i];
}

let average = sum / arr.length;""",
    "fibonacci": """// Fibonacci Sequence
let a = 0;
let b = 1;
let n = 8;

for (let i = 0; i < n; i++) {
  let temp = a + b;
  a = b;
  b = temp;
}

let result = a;""",
    "factorial": """// Factorial Calculation
let n = 5;
let factorial = 1;

for (let i = 1; i <= n; i++) {
  factorial = factorial * i;
}""",
    "max": """// Find Maximum
let numbers = [3, 7, 2, 9, 1, 5];
let max = numbers[0];

for (let i = 1; i < numbers.length; i++) {
  let current = numbers[i];
  if (current > max) {
    max = current;
  }
}""",
}

DEFAULT_EXAMPLE = "array"


def get_example(name: str) -> str:
    """Return the named example, falling back to the array sum script."""
    return EXAMPLES.get(name, EXAMPLES[DEFAULT_EXAMPLE])
