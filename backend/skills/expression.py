"""
Expression evaluator for derived columns.

Evaluates a small SQL-flavoured grammar against a single row::

    expr := <column name>                       exact key match
          | CAST(expr AS float|int|string)
          | REPLACE(expr, "search", "replacement")
          | expr / expr                         left-associative, numeric; a spaced " / "
                                                takes precedence over a bare "/"
          | "quoted literal" | (expr)
          | anything else                       returned as a literal

Unresolvable input raises ``ExpressionError``; callers decide how to degrade.
"""

from __future__ import annotations

import re
from typing import Any, List, Mapping, Optional

from core.utils import as_text, is_number, to_number


class ExpressionError(ValueError):
    """Raised when an expression cannot be resolved for a row."""


_CALL_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\s*\(")
_AS_RE = re.compile(r"\s+AS\s+", re.IGNORECASE)
_FLOAT_PREFIX = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_INT_PREFIX = re.compile(r"^\s*[+-]?\d+")
_TYPE_ARGS = re.compile(r"\(.*\)$")
_SPACED_DIV = re.compile(r"\s+/\s+")

_FLOAT_TYPES = {"float", "double", "decimal", "number", "numeric", "real"}
_INT_TYPES = {"int", "integer", "bigint", "smallint"}


# ---------------------------------------------------------------------------
# Scanning helpers
# ---------------------------------------------------------------------------

def _top_level_mask(text: str) -> List[bool]:
    """Per character: True when outside quotes and parentheses."""
    mask: List[bool] = []
    depth = 0
    quote: Optional[str] = None
    for ch in text:
        if quote:
            mask.append(False)
            if ch == quote:
                quote = None
            continue
        if ch in "\"'":
            quote = ch
            mask.append(False)
        elif ch == "(":
            depth += 1
            mask.append(False)
        elif ch == ")":
            depth -= 1
            mask.append(False)
        else:
            mask.append(depth == 0)
    return mask


def _closing_paren(text: str, open_idx: int) -> int:
    """Index of the parenthesis closing the one at *open_idx*, or -1."""
    depth = 0
    quote: Optional[str] = None
    for i in range(open_idx, len(text)):
        ch = text[i]
        if quote:
            if ch == quote:
                quote = None
            continue
        if ch in "\"'":
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i
    return -1


def _split_top_level(text: str, sep: str) -> List[str]:
    mask = _top_level_mask(text)
    parts: List[str] = []
    start = 0
    for i, ch in enumerate(text):
        if ch == sep and mask[i]:
            parts.append(text[start:i])
            start = i + 1
    parts.append(text[start:])
    return parts


def _split_division(text: str) -> List[str]:
    """Operands of a top-level division; a spaced `` / `` wins over a bare slash."""
    mask = _top_level_mask(text)
    spaced = [m for m in _SPACED_DIV.finditer(text) if mask[m.start() + m.group().index("/")]]
    if not spaced:
        return _split_top_level(text, "/")
    parts: List[str] = []
    start = 0
    for m in spaced:
        parts.append(text[start:m.start()])
        start = m.end()
    parts.append(text[start:])
    return parts


def _unquote(token: str) -> Optional[str]:
    token = token.strip()
    if len(token) >= 2 and token[0] in "\"'" and token[-1] == token[0]:
        return token[1:-1]
    return None


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def _cast(value: Any, type_name: str) -> Any:
    kind = _TYPE_ARGS.sub("", type_name.strip().lower()).strip()
    if kind in _FLOAT_TYPES:
        if is_number(value):
            return float(value)
        m = _FLOAT_PREFIX.match(as_text(value))
        return float(m.group()) if m else 0.0
    if kind in _INT_TYPES:
        if is_number(value):
            return int(value)
        m = _INT_PREFIX.match(as_text(value))
        return int(m.group()) if m else 0
    return as_text(value)


def _eval_cast(inner: str, row: Mapping[str, Any]) -> Any:
    mask = _top_level_mask(inner)
    matches = [m for m in _AS_RE.finditer(inner) if mask[m.start()]]
    if not matches:
        raise ExpressionError(f"CAST without AS: {inner!r}")
    last = matches[-1]
    value = _evaluate(inner[: last.start()], row)
    return _cast(value, inner[last.end():])


def _eval_replace(inner: str, row: Mapping[str, Any]) -> str:
    args = _split_top_level(inner, ",")
    if len(args) != 3:
        raise ExpressionError(f"REPLACE expects 3 arguments, got {len(args)}")
    source = as_text(_evaluate(args[0], row))
    search = _unquote(args[1])
    replacement = _unquote(args[2])
    if search is None:
        search = args[1].strip()
    if replacement is None:
        replacement = args[2].strip()
    if not search:
        return source
    return source.replace(search, replacement)


def _operand(value: Any, token: str) -> float:
    num = to_number(value)
    if num is None:
        raise ExpressionError(f"non-numeric operand {token.strip()!r} -> {value!r}")
    return num


def _evaluate(expression: str, row: Mapping[str, Any]) -> Any:
    expr = expression.strip()
    if not expr:
        raise ExpressionError("empty expression")

    if expr in row:
        return row[expr]

    parts = _split_division(expr)
    if len(parts) > 1:
        result = _operand(_evaluate(parts[0], row), parts[0])
        for part in parts[1:]:
            divisor = _operand(_evaluate(part, row), part)
            if divisor == 0:
                raise ExpressionError(f"division by zero in {expr!r}")
            result = result / divisor
        return result

    call = _CALL_RE.match(expr)
    if call and _closing_paren(expr, call.end() - 1) == len(expr) - 1:
        name = call.group(1).upper()
        inner = expr[call.end(): -1]
        if name == "CAST":
            return _eval_cast(inner, row)
        if name == "REPLACE":
            return _eval_replace(inner, row)
        return expr

    literal = _unquote(expr)
    if literal is not None:
        return literal

    if expr.startswith("(") and _closing_paren(expr, 0) == len(expr) - 1:
        return _evaluate(expr[1:-1], row)

    return expr


def evaluate_expression(expression: str, row: Mapping[str, Any]) -> Any:
    """Evaluate *expression* against *row*.

    Raises ExpressionError when a sub-expression cannot be resolved
    (non-numeric division operand, division by zero, malformed CAST/REPLACE).
    """
    if not isinstance(expression, str):
        raise ExpressionError(f"expression must be a string, got {type(expression).__name__}")
    return _evaluate(expression, row)
