"""Evaluation of value formulas against raw response bytes.

Formulas are plain arithmetic over the response data bytes, named `A` for the
first byte, `B` for the second and so on, e.g. `(A*256+B)/4` for engine RPM.
"""

from __future__ import annotations

import math
import string

from obdlog.core.errors import FormulaError

_ALLOWED_CHARS = set("0123456789.+-*/%() ") | set(string.ascii_uppercase)


def byte_names(data: bytes) -> dict[str, int]:
    return {string.ascii_uppercase[i]: b for i, b in enumerate(data[: len(string.ascii_uppercase)])}


def evaluate(formula: str, data: bytes) -> float:
    """Evaluate `formula` with `A`, `B`, ... bound to the bytes of `data`.

    Raises:
        FormulaError: If the formula contains unsafe characters, references a
            byte missing from `data`, or does not produce a number.
    """
    if not all(c in _ALLOWED_CHARS for c in formula):
        raise FormulaError(f"Formula contains unsafe characters: {formula}")
    if "**" in formula:
        raise FormulaError(f"Formula must not use exponentiation: {formula}")

    namespace: dict[str, object] = {"__builtins__": {}}
    namespace.update(byte_names(data))
    try:
        result = eval(formula, namespace, {})
    except Exception as exc:
        raise FormulaError(f"Failed to evaluate formula '{formula}' with data {data.hex(' ')}: {exc}") from exc

    if not isinstance(result, (int, float)):
        raise FormulaError(f"Formula '{formula}' did not produce a number")
    return float(result)


def evaluate_or_nan(formula: str, data: bytes) -> float:
    """Like `evaluate`, but an empty response or unresolvable formula gives NaN."""
    if not data:
        return math.nan
    try:
        return evaluate(formula, data)
    except FormulaError:
        return math.nan
