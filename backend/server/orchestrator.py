"""
Dashboard orchestrator: composes the skills into one synchronous pipeline.

    text -> parse -> validate (drop) -> [data check] -> rebalance -> layout report

Per chart, on demand: ``render_chart_rows`` runs the chart's transform over
the dataset rows.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from langchain_core.language_models.chat_models import BaseChatModel

from app.llm import SAMPLE_ROW_LIMIT, ColumnLike, generate_recommendation_text
from core.models import ChartSuggestion, DashboardLayout, RebalanceOptions
from skills.parse import parse_suggestions
from skills.rebalance import rebalance_charts, resolve_options, validate_chart_layout
from skills.transform import transform_rows
from skills.validate import filter_renderable_charts, filter_valid_suggestions

logger = logging.getLogger(__name__)

Rows = Sequence[Mapping[str, Any]]


def build_dashboard(
    text: str,
    options: Union[RebalanceOptions, Mapping[str, Any], None] = None,
    *,
    rows: Optional[Rows] = None,
) -> DashboardLayout:
    """
    Turn recommendation text into a rebalanced dashboard.

    With *rows*, charts whose data would not render are dropped before
    rebalancing and the rows seed the fallback table. Never raises for bad
    text; contradictory *options* raise ValidationError.
    """
    opts = resolve_options(options)

    candidates = parse_suggestions(text)
    valid, rejected = filter_valid_suggestions(candidates)
    if rows:
        renderable = filter_renderable_charts(valid, rows)
        rejected += len(valid) - len(renderable)
        valid = renderable

    charts = rebalance_charts(valid, opts, rows)
    violations = validate_chart_layout(charts, opts)
    shortfall = max(opts.target_count - len(charts), 0)

    notice = None
    if shortfall:
        notice = (
            f"Showing {len(charts)} of {opts.target_count} charts: "
            "not enough usable columns to fill the dashboard."
        )
        logger.warning("Dashboard short by %d chart(s)", shortfall)
    for v in violations:
        logger.info("Layout check: %s", v)

    logger.info(
        "Dashboard built: %d candidate(s), %d rejected, %d chart(s)",
        len(candidates), rejected, len(charts),
    )
    return DashboardLayout(
        charts=charts,
        violations=violations,
        rejected=rejected,
        shortfall=shortfall,
        notice=notice,
    )


def render_chart_rows(
    chart: Union[ChartSuggestion, Mapping[str, Any]],
    rows: Rows,
) -> List[Dict[str, Any]]:
    """Rows ready for the renderer: the chart's transform, or the rows as-is (tables capped at ``limit``)."""
    if not isinstance(chart, ChartSuggestion):
        chart = ChartSuggestion.model_validate(dict(chart))

    if chart.data_transform is not None:
        return transform_rows(rows, chart.data_transform)

    out = [dict(r) for r in rows]
    limit = chart.data_mapping.get("limit") if chart.is_table else None
    if isinstance(limit, int) and limit >= 0:
        out = out[:limit]
    return out


def recommend_dashboard(
    columns: Sequence[ColumnLike],
    rows: Rows,
    options: Union[RebalanceOptions, Mapping[str, Any], None] = None,
    *,
    chat_model: Optional[BaseChatModel] = None,
) -> DashboardLayout:
    """Ask the generator for recommendations over *columns*, then build the dashboard."""
    opts = resolve_options(options)
    text = generate_recommendation_text(
        columns,
        list(rows[:SAMPLE_ROW_LIMIT]),
        chat_model=chat_model,
        target_count=opts.target_count,
    )
    return build_dashboard(text, opts, rows=rows)
