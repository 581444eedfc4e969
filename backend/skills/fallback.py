"""
Fallback synthesizer skill.

Manufactures minimally valid charts when the recommended set is short of a
category. Columns are only ever borrowed from charts that already passed
validation, so a synthesized chart never points at a field nobody proposed.

Column discovery tie-break: charts are scanned in the order given (the
rebalancer passes the candidate pool in its incoming order), and within one
chart the mapping keys are tried in a fixed priority order. The first hit
wins.

Scorecard and visualization synthesis return None when no usable column
exists; table synthesis always succeeds.
"""

from __future__ import annotations

import logging
import re
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from core.models import (
    VISUALIZATION_ROTATION,
    ChartSuggestion,
    ChartType,
    TableMapping,
)
from core.utils import column_names

logger = logging.getLogger(__name__)

SCORECARD_LABELS = (
    "Total Revenue",
    "Total Sales",
    "Average Value",
    "Total Count",
    "Performance Score",
    "Growth Rate",
)

SCORECARD_QUALITY = 65.0
VISUALIZATION_QUALITY = 60.0
TABLE_QUALITY = 70.0

_CATEGORY_SUFFIX = re.compile(r"\s+(name|id|code|key)$", re.IGNORECASE)
_VALUE_SUFFIX = re.compile(r"\s+(total|sum|count|amount|value)$", re.IGNORECASE)

_TITLE_TEMPLATES = {
    ChartType.bar: ("{val} by {cat}", "Compares {value} across different {category}"),
    ChartType.line: ("{val} Trend by {cat}", "Shows how {value} changes across different {category} over time"),
    ChartType.area: ("{val} Growth by {cat}", "Visualizes the cumulative {value} growth across {category}"),
    ChartType.pie: ("{val} Distribution by {cat}", "Displays the proportion of {value} for each {category}"),
}


# ---------------------------------------------------------------------------
# Column discovery
# ---------------------------------------------------------------------------

def _first_name(value: Any) -> Optional[str]:
    names = column_names(value)
    return names[0] if names else None


def _value_column(chart: ChartSuggestion) -> Optional[str]:
    mapping = chart.data_mapping
    for key in ("values", "yAxis", "value", "metric"):
        name = _first_name(mapping.get(key))
        if name:
            return name
    return None


def find_metric_column(charts: Sequence[ChartSuggestion]) -> Optional[str]:
    """First numeric-bearing field: ``values[0]``, ``yAxis`` (or its first item), ``value``, then ``metric``."""
    for chart in charts:
        column = _value_column(chart)
        if column:
            return column
    return None


def find_category_value_columns(charts: Sequence[ChartSuggestion]) -> Tuple[Optional[str], Optional[str]]:
    """First categorical-like field (``category``, then ``xAxis``) and first value field."""
    category: Optional[str] = None
    value: Optional[str] = None
    for chart in charts:
        mapping = chart.data_mapping
        if category is None:
            category = _first_name(mapping.get("category"))
        if category is None and isinstance(mapping.get("xAxis"), str):
            category = _first_name(mapping.get("xAxis"))
        if value is None:
            value = _value_column(chart)
        if category and value:
            break
    return category, value


# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------

def synthesize_scorecard(existing: Sequence[ChartSuggestion], index: int) -> Optional[ChartSuggestion]:
    metric = find_metric_column(existing)
    if metric is None:
        logger.warning("Cannot synthesize summary card: no metric column among %d chart(s)", len(existing))
        return None
    return ChartSuggestion.model_validate({
        "id": f"fallback-scorecard-{index}",
        "type": ChartType.scorecard,
        "title": SCORECARD_LABELS[index % len(SCORECARD_LABELS)],
        "description": f"Key performance indicator {index + 1}",
        "dataMapping": {"metric": metric, "aggregation": "sum"},
        "qualityScore": SCORECARD_QUALITY,
        "confidence": SCORECARD_QUALITY,
        "reasoning": "Fallback scorecard generated to meet minimum scorecard requirement",
    })


def _titles(category: str, value: str, chart_type: ChartType) -> Tuple[str, str]:
    cat = _CATEGORY_SUFFIX.sub("", category).strip() or category
    val = _VALUE_SUFFIX.sub("", value).strip() or value
    title, description = _TITLE_TEMPLATES.get(chart_type, _TITLE_TEMPLATES[ChartType.bar])
    return (
        title.format(cat=cat, val=val),
        description.format(category=category, value=value),
    )


def synthesize_visualization(
    existing: Sequence[ChartSuggestion],
    index: int,
    chart_type: Optional[ChartType] = None,
) -> Optional[ChartSuggestion]:
    """Category/value chart; type rotates bar, line, area, pie unless *chart_type* is given."""
    category, value = find_category_value_columns(existing)
    if category is None or value is None:
        logger.warning(
            "Cannot synthesize visualization: category=%s value=%s", category, value,
        )
        return None

    chart_type = chart_type or VISUALIZATION_ROTATION[index % len(VISUALIZATION_ROTATION)]
    title, description = _titles(category, value, chart_type)
    mapping = {"category": category, "values": [value], "aggregation": "sum"}
    if chart_type is ChartType.pie:
        mapping["value"] = value
    return ChartSuggestion.model_validate({
        "id": f"fallback-viz-{index}",
        "type": chart_type,
        "title": title,
        "description": description,
        "dataMapping": mapping,
        "qualityScore": VISUALIZATION_QUALITY,
        "confidence": VISUALIZATION_QUALITY,
        "reasoning": "Additional visualization generated to meet minimum chart requirement",
    })


def synthesize_table(
    existing: Sequence[ChartSuggestion],
    rows: Optional[Sequence[Mapping[str, Any]]] = None,
    *,
    max_columns: int = 10,
    row_limit: int = 100,
) -> ChartSuggestion:
    """Overview table over every column the other charts use; never fails."""
    columns: List[str] = []
    for chart in existing:
        for name in chart.data_mapping.referenced_fields():
            if name not in columns:
                columns.append(name)
    if not columns and rows:
        columns = [str(k) for k in rows[0].keys()]
    columns = columns[:max_columns]

    if columns:
        mapping = TableMapping(columns=columns, limit=row_limit)
    else:
        logger.warning("Synthesized table has no columns to show")
        mapping = TableMapping.model_construct(columns=[], limit=row_limit)

    return ChartSuggestion.model_validate({
        "id": "fallback-table",
        "type": ChartType.table,
        "title": "Complete Data Overview",
        "description": "Comprehensive view of all data for detailed analysis",
        "dataMapping": mapping,
        "qualityScore": TABLE_QUALITY,
        "confidence": TABLE_QUALITY,
        "reasoning": "Fallback table generated to ensure complete data visibility",
    })
