"""
Validation skill for chart suggestions.

Two levels:

* structural: does the candidate's ``dataMapping`` carry the fields its
  declared type needs? The rule per type lives on the mapping variant in
  ``core.models``; here we only run it and turn failures into log lines.
* data-level: given the actual rows, would the chart draw something useful
  (fields present, numbers where numbers are needed, some variation)?

Neither level raises for bad input; rejects are logged and dropped.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd
from pydantic import ValidationError

from core.models import ChartSuggestion, ChartType, DataValidationResult
from core.utils import column_names, is_blank, smart_numeric_series

logger = logging.getLogger(__name__)

Candidate = Union[ChartSuggestion, Mapping[str, Any]]


# ---------------------------------------------------------------------------
# Structural validation
# ---------------------------------------------------------------------------

def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
        msg = str(err.get("msg", "")).removeprefix("Value error, ")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


def validate_suggestion(candidate: Candidate) -> Tuple[Optional[ChartSuggestion], Optional[str]]:
    """
    Validate one candidate.

    Returns (chart, None) when valid, (None, reason) otherwise.
    """
    if isinstance(candidate, ChartSuggestion):
        return candidate, None
    if not isinstance(candidate, Mapping):
        return None, f"expected an object, got {type(candidate).__name__}"
    try:
        return ChartSuggestion.model_validate(dict(candidate)), None
    except ValidationError as exc:
        return None, _describe(exc)


def is_valid_chart(candidate: Candidate) -> bool:
    chart, _ = validate_suggestion(candidate)
    return chart is not None


def filter_valid_suggestions(candidates: Iterable[Candidate]) -> Tuple[List[ChartSuggestion], int]:
    """Keep valid candidates in input order. Returns (charts, rejected_count)."""
    charts: List[ChartSuggestion] = []
    rejected = 0
    for i, candidate in enumerate(candidates):
        chart, reason = validate_suggestion(candidate)
        if chart is None:
            rejected += 1
            ident = candidate.get("id") if isinstance(candidate, Mapping) else None
            logger.warning("Rejected suggestion %s: %s", ident or f"#{i}", reason)
            continue
        charts.append(chart)
    if rejected:
        logger.info("Validated %d suggestion(s), rejected %d", len(charts), rejected)
    return charts, rejected


# ---------------------------------------------------------------------------
# Data-level validation
# ---------------------------------------------------------------------------

def _fail(reason: str, suggestion: str) -> DataValidationResult:
    return DataValidationResult(is_valid=False, reason=reason, suggestions=[suggestion])


def _numbers(df: pd.DataFrame, fields: Sequence[str]) -> pd.Series:
    """All parseable numeric values across *fields*, NaN dropped."""
    parts = [smart_numeric_series(df[f]).dropna() for f in fields if f in df.columns]
    if not parts:
        return pd.Series(dtype="float64")
    return pd.concat(parts, ignore_index=True)


def _measure_fields(chart: ChartSuggestion, fields: List[str]) -> List[str]:
    """Referenced fields minus the dimension (xAxis / category)."""
    dims = set(column_names(chart.data_mapping.get("xAxis"))) | set(
        column_names(chart.data_mapping.get("category"))
    )
    return [f for f in fields if f not in dims]


def _check_series(chart: ChartSuggestion, df: pd.DataFrame, fields: List[str]) -> Optional[DataValidationResult]:
    """line / area / combo."""
    label = chart.type.value
    if len(df) < 2:
        return _fail(f"{label} chart needs at least 2 data points",
                     "Add more data points for meaningful visualization")
    measures = _measure_fields(chart, fields)
    if not measures:
        return None
    values = _numbers(df, measures)
    if values.empty:
        return _fail("No numeric values found", f"{label.capitalize()} charts require numeric data fields")
    if (values == 0).all():
        return _fail("All values are zero", "This metric has no data to visualize")
    if chart.type is not ChartType.combo and values.nunique() == 1:
        return _fail("All data points have the same value",
                     "Line charts are not meaningful when all values are identical")
    return None


def _check_pie(chart: ChartSuggestion, df: pd.DataFrame) -> Optional[DataValidationResult]:
    mapping = chart.data_mapping
    category = column_names(mapping.get("category"))[0]
    value_fields = column_names(mapping.get("value")) or column_names(mapping.get("values"))
    if not value_fields:
        return _fail("Pie chart requires both category and value fields",
                     "Configure both label and value fields for the pie chart")
    if df[category].nunique(dropna=False) < 2:
        return _fail("All data points have the same category",
                     "Pie charts need multiple categories to be meaningful")
    values = _numbers(df, value_fields[:1])
    if values.empty or (values == 0).all():
        return _fail("All values are zero or non-numeric",
                     "Ensure the value field contains numeric data")
    return None


def _check_scatter(chart: ChartSuggestion, df: pd.DataFrame) -> Optional[DataValidationResult]:
    mapping = chart.data_mapping
    x_field = column_names(mapping.get("xAxis"))[0]
    y_fields = column_names(mapping.get("yAxis")) or column_names(mapping.get("values"))
    if len(df) < 3:
        return _fail("Scatter plot needs at least 3 data points",
                     "Add more data points for meaningful patterns")
    xs = smart_numeric_series(df[x_field]).dropna()
    ys = smart_numeric_series(df[y_fields[0]]).dropna()
    if len(xs) < 3 or len(ys) < 3:
        return _fail("Not enough valid numeric values",
                     "Scatter plots need numeric data with fewer null values")
    if xs.nunique() == 1 and ys.nunique() == 1:
        return _fail("All data points are at the same location",
                     "Scatter plots need variation in data to show patterns")
    return None


def validate_chart_data(chart: ChartSuggestion, rows: Sequence[Mapping[str, Any]]) -> DataValidationResult:
    """Check a structurally valid chart against the rows it will be drawn from."""
    if not rows:
        return _fail("No data available", "Upload a dataset to see visualizations")

    fields = chart.data_mapping.referenced_fields()
    if not fields:
        return DataValidationResult(
            is_valid=True,
            reason="No data fields configured for this chart",
            warnings=["Chart needs data configuration"],
        )

    first = rows[0]
    missing = [f for f in fields if f not in first]
    if missing:
        return _fail(f"Missing data fields: {', '.join(missing)}",
                     "Check if the data structure matches the chart configuration")

    df = pd.DataFrame(list(rows), columns=list(first.keys()))
    result: Optional[DataValidationResult] = None

    if chart.type is ChartType.scorecard:
        if _numbers(df, fields[:1]).empty:
            result = _fail("Scorecard requires numeric values",
                           "Select a field with numeric data for the scorecard")
    elif chart.type is ChartType.pie:
        result = _check_pie(chart, df)
    elif chart.type in (ChartType.line, ChartType.area, ChartType.combo):
        result = _check_series(chart, df, fields)
    elif chart.type is ChartType.bar:
        measures = _measure_fields(chart, fields)
        if measures:
            values = _numbers(df, measures)
            if values.empty:
                result = _fail("No numeric values found",
                               "Select numeric fields for bar chart visualization")
            elif (values == 0).all():
                result = _fail("All values are zero",
                               "Bar charts with all zero values provide no insight")
    elif chart.type is ChartType.scatter:
        result = _check_scatter(chart, df)

    if result is not None:
        return result

    if not any(not is_blank(v) for f in fields for v in df[f].tolist()):
        return _fail("Selected fields contain no data", "Choose fields that contain actual values")
    return DataValidationResult(is_valid=True)


def filter_renderable_charts(
    charts: Iterable[ChartSuggestion],
    rows: Sequence[Mapping[str, Any]],
) -> List[ChartSuggestion]:
    """Keep charts whose data check passes; no rows means nothing renders."""
    charts = list(charts)
    if not rows:
        logger.warning("No rows supplied; dropping all %d chart(s)", len(charts))
        return []

    kept: List[ChartSuggestion] = []
    for chart in charts:
        check = validate_chart_data(chart, rows)
        if check.is_valid:
            kept.append(chart)
        else:
            logger.info("Chart '%s' (%s) not renderable: %s", chart.title, chart.type.value, check.reason)
    logger.info("Data validation kept %d of %d chart(s)", len(kept), len(charts))
    return kept
