"""
Data transformer skill.

Takes raw rows + a DataTransformSpec -> the exact row set one chart needs.

Stage order is fixed; each stage consumes the previous stage's output:
1. column transforms (derived columns via the expression evaluator)
2. filters (every condition must hold)
3. aggregation (global, or per group-by bucket)
4. sort (multi-key, stable)
5. limit

Input rows are never mutated.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np

from core.models import (
    AggregateFunction,
    AggregationSpec,
    ColumnTransform,
    DataTransformSpec,
    FilterCondition,
    FilterOperator,
    OrderBySpec,
    SortDirection,
)
from core.utils import as_text, is_blank, is_number, to_number
from skills.expression import ExpressionError, evaluate_expression

logger = logging.getLogger(__name__)

DataRow = Dict[str, Any]


# ---------------------------------------------------------------------------
# Stage 1: column transforms
# ---------------------------------------------------------------------------

def apply_column_transforms(
    rows: Sequence[Mapping[str, Any]],
    transforms: Sequence[ColumnTransform],
) -> List[DataRow]:
    """Evaluate each transform against the source row; failures become None."""
    failures: Dict[str, List[Any]] = {}
    out: List[DataRow] = []
    for row in rows:
        new_row = dict(row)
        for transform in transforms:
            try:
                value = evaluate_expression(transform.expression, row)
            except ExpressionError as exc:
                entry = failures.setdefault(transform.target, [0, str(exc)])
                entry[0] += 1
                value = None
            new_row[transform.target] = value
        out.append(new_row)

    for target, (count, first_error) in failures.items():
        logger.warning(
            "Column transform '%s' failed on %d of %d rows (first error: %s)",
            target, count, len(out), first_error,
        )
    return out


# ---------------------------------------------------------------------------
# Stage 2: filters
# ---------------------------------------------------------------------------

def _compare_numbers(value: Any, target: Any, op) -> bool:
    left = to_number(value)
    right = to_number(target)
    if left is None or right is None:
        return False
    return op(left, right)


def _matches(row: Mapping[str, Any], cond: FilterCondition) -> bool:
    value = row.get(cond.column)
    target = cond.value
    op = cond.operator

    if op is FilterOperator.equals:
        return value == target
    if op is FilterOperator.not_equals:
        return value != target
    if op is FilterOperator.greater_than:
        return _compare_numbers(value, target, lambda a, b: a > b)
    if op is FilterOperator.less_than:
        return _compare_numbers(value, target, lambda a, b: a < b)
    if op is FilterOperator.contains:
        return as_text(target).lower() in as_text(value).lower()
    if op is FilterOperator.not_contains:
        return as_text(target).lower() not in as_text(value).lower()
    if op is FilterOperator.in_:
        return isinstance(target, (list, tuple)) and value in target
    if op is FilterOperator.not_in:
        return isinstance(target, (list, tuple)) and value not in target
    if op is FilterOperator.is_null:
        return is_blank(value)
    if op is FilterOperator.is_not_null:
        return not is_blank(value)
    return True


def apply_filters(rows: Sequence[Mapping[str, Any]], filters: Sequence[FilterCondition]) -> List[DataRow]:
    return [dict(row) for row in rows if all(_matches(row, f) for f in filters)]


# ---------------------------------------------------------------------------
# Stage 3: aggregation
# ---------------------------------------------------------------------------

def _numeric_values(rows: Iterable[Mapping[str, Any]], column: str) -> List[float]:
    values: List[float] = []
    for row in rows:
        num = to_number(row.get(column))
        if num is not None:
            values.append(num)
    return values


def _hashable(value: Any) -> Any:
    if isinstance(value, (list, dict, set)):
        return repr(value)
    return value


def _mode(values: List[float]) -> Optional[float]:
    counts: Dict[float, int] = {}
    for v in values:
        counts[v] = counts.get(v, 0) + 1
    best: Optional[float] = None
    best_count = 0
    for v, n in counts.items():
        if n > best_count:
            best, best_count = v, n
    return best


def aggregate_values(rows: Sequence[Mapping[str, Any]], agg: AggregationSpec) -> Any:
    """Compute one aggregation over *rows*.

    ``count``/``count_distinct`` look at non-null cells of any type; every other
    function coerces to numbers and drops what does not parse. Empty input gives
    0 for sum/avg and None for the order statistics.
    """
    fn = agg.function
    if fn is AggregateFunction.count:
        return sum(1 for row in rows if not is_blank(row.get(agg.column)))
    if fn is AggregateFunction.count_distinct:
        return len({_hashable(row.get(agg.column)) for row in rows if not is_blank(row.get(agg.column))})

    values = _numeric_values(rows, agg.column)
    if fn is AggregateFunction.sum:
        return float(np.sum(values)) if values else 0.0
    if fn is AggregateFunction.avg:
        return float(np.mean(values)) if values else 0.0
    if not values:
        return None
    if fn is AggregateFunction.min:
        return float(np.min(values))
    if fn is AggregateFunction.max:
        return float(np.max(values))
    if fn is AggregateFunction.median:
        return float(np.median(values))
    if fn is AggregateFunction.percentile:
        p = agg.percentile if agg.percentile is not None else 50.0
        return float(np.percentile(values, p))
    if fn is AggregateFunction.mode:
        return _mode(values)
    if fn is AggregateFunction.std:
        return float(np.std(values))
    if fn is AggregateFunction.variance:
        return float(np.var(values))
    return None


def apply_aggregations(
    rows: Sequence[Mapping[str, Any]],
    aggregations: Sequence[AggregationSpec],
    group_by: Optional[Sequence[str]] = None,
) -> List[DataRow]:
    if not group_by:
        return [{agg.output_key: aggregate_values(rows, agg) for agg in aggregations}]

    # bucket order follows first appearance
    buckets: Dict[str, List[Mapping[str, Any]]] = {}
    for row in rows:
        key = "|".join(as_text(row.get(col)) for col in group_by)
        buckets.setdefault(key, []).append(row)

    out: List[DataRow] = []
    for members in buckets.values():
        first = members[0]
        result: DataRow = {col: first.get(col) for col in group_by}
        for agg in aggregations:
            result[agg.output_key] = aggregate_values(members, agg)
        out.append(result)
    return out


# ---------------------------------------------------------------------------
# Stage 4: sort
# ---------------------------------------------------------------------------

def _compare_cells(a: Any, b: Any) -> int:
    if is_number(a) and is_number(b):
        return (a > b) - (a < b)
    sa, sb = as_text(a), as_text(b)
    fa, fb = sa.casefold(), sb.casefold()
    if fa != fb:
        return (fa > fb) - (fa < fb)
    return (sa > sb) - (sa < sb)


def apply_sorting(rows: Sequence[Mapping[str, Any]], order_by: Sequence[OrderBySpec]) -> List[DataRow]:
    def compare(a: Mapping[str, Any], b: Mapping[str, Any]) -> int:
        for order in order_by:
            c = _compare_cells(a.get(order.column), b.get(order.column))
            if c:
                return -c if order.direction is SortDirection.desc else c
        return 0

    return [dict(r) for r in sorted(rows, key=functools.cmp_to_key(compare))]


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def transform_rows(
    rows: Sequence[Mapping[str, Any]],
    spec: Union[DataTransformSpec, Mapping[str, Any], None],
) -> List[DataRow]:
    """Run every stage of *spec* over *rows*; absent sections are no-ops."""
    if spec is None:
        return [dict(r) for r in rows]
    if not isinstance(spec, DataTransformSpec):
        spec = DataTransformSpec.model_validate(spec)

    result: List[DataRow] = [dict(r) for r in rows]

    if spec.column_transforms:
        result = apply_column_transforms(result, spec.column_transforms)

    if spec.filters:
        result = apply_filters(result, spec.filters)

    if spec.aggregations or spec.group_by_columns:
        result = apply_aggregations(result, spec.aggregations, spec.group_by_columns)

    if spec.order_by:
        result = apply_sorting(result, spec.order_by)

    if spec.limit is not None:
        result = result[: spec.limit]

    logger.debug("Transformed %d input rows into %d rows", len(rows), len(result))
    return result
