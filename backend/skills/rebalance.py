"""
Layout rebalancer skill.

Arranges validated charts into a fixed-size dashboard::

    [summary cards][visualizations ...][table]

* summary cards: between ``min_scorecards`` and ``max_scorecards``, at the front
* table: exactly one, last
* everything else in between, best quality first

Shortfalls are padded with synthesized charts; surpluses are trimmed from the
visualizations only. When synthesis runs out of usable columns the list is
returned short. That is reported by ``validate_chart_layout``, never raised.

All sorts are stable, so equal quality scores keep their incoming order and
the same input always yields the same layout.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from core.config import default_rebalance_options
from core.models import ChartStats, ChartSuggestion, ChartType, RebalanceOptions
from skills.fallback import synthesize_scorecard, synthesize_table, synthesize_visualization
from skills.validate import filter_valid_suggestions

logger = logging.getLogger(__name__)

OptionsLike = Union[RebalanceOptions, Mapping[str, Any], None]


def resolve_options(options: OptionsLike) -> RebalanceOptions:
    """*options* as RebalanceOptions; None means the ``DASHBOARD_*`` environment defaults."""
    if options is None:
        return default_rebalance_options()
    if isinstance(options, RebalanceOptions):
        return options
    return RebalanceOptions.model_validate(dict(options))


def sort_by_quality(charts: Iterable[ChartSuggestion]) -> List[ChartSuggestion]:
    """Descending by quality; ties keep their relative order."""
    return sorted(charts, key=lambda c: -c.quality)


def select_top_charts(
    charts: Iterable[ChartSuggestion],
    count: int,
    min_score: Optional[float] = None,
    allowed_types: Optional[Iterable[ChartType]] = None,
) -> List[ChartSuggestion]:
    pool = list(charts)
    if allowed_types is not None:
        allowed = {ChartType(t) for t in allowed_types}
        pool = [c for c in pool if c.type in allowed]
    if min_score is not None:
        pool = [c for c in pool if c.quality >= min_score]
    return sort_by_quality(pool)[: max(count, 0)]


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------

class _VisualizationFactory:
    """Hands out fallback visualizations with a running index (ids + type rotation)."""

    def __init__(self, chart_type: Optional[ChartType] = None):
        self.index = 0
        self.chart_type = chart_type

    def make(self, pool: Sequence[ChartSuggestion]) -> Optional[ChartSuggestion]:
        chart = synthesize_visualization(pool, self.index, self.chart_type)
        if chart is not None:
            self.index += 1
        return chart


def _pick_table(
    tables: List[ChartSuggestion],
    visualizations: List[ChartSuggestion],
    pool: List[ChartSuggestion],
    opts: RebalanceOptions,
    rows: Optional[Sequence[Mapping[str, Any]]],
) -> ChartSuggestion:
    """Choose the last-slot chart. May pop the best visualization off *visualizations*."""
    if tables:
        return tables[0]

    def table() -> ChartSuggestion:
        return synthesize_table(
            pool, rows, max_columns=opts.table_max_columns, row_limit=opts.table_row_limit,
        )

    if opts.require_table:
        return table()
    if visualizations:
        return visualizations.pop(0)
    if opts.fallback_chart_type is not ChartType.table:
        chart = synthesize_visualization(pool, 0, opts.fallback_chart_type)
        if chart is not None:
            return chart.model_copy(update={"id": "fallback-slot"})
    return table()


def enforce_layout_constraints(
    charts: Sequence[ChartSuggestion],
    options: OptionsLike = None,
    rows: Optional[Sequence[Mapping[str, Any]]] = None,
) -> List[ChartSuggestion]:
    """Steps 1-7: partition, sort, select, pad categories, concatenate."""
    opts = resolve_options(options)
    pool = list(charts)

    scorecards = sort_by_quality(c for c in pool if c.is_scorecard)
    tables = sort_by_quality(c for c in pool if c.is_table)
    visualizations = sort_by_quality(c for c in pool if not c.is_scorecard and not c.is_table)

    selected_scorecards = scorecards[: opts.max_scorecards]
    while len(selected_scorecards) < opts.min_scorecards:
        fallback = synthesize_scorecard(pool, len(selected_scorecards))
        if fallback is None:
            logger.warning(
                "Summary cards short: %d of minimum %d", len(selected_scorecards), opts.min_scorecards,
            )
            break
        selected_scorecards.append(fallback)

    table = _pick_table(tables, visualizations, pool, opts, rows)

    slots = max(opts.target_count - len(selected_scorecards) - 1, 0)
    selected_visualizations = visualizations[:slots]

    factory = _VisualizationFactory()
    needed = opts.min_non_scorecards - 1
    while len(selected_visualizations) < needed:
        fallback = factory.make(pool + selected_scorecards + selected_visualizations)
        if fallback is None:
            break
        selected_visualizations.append(fallback)

    return selected_scorecards + selected_visualizations + [table]


def _trim(layout: List[ChartSuggestion], opts: RebalanceOptions) -> List[ChartSuggestion]:
    scorecards = [c for c in layout if c.is_scorecard]
    table = layout[-1]
    middle = [c for c in layout[:-1] if not c.is_scorecard]
    keep = max(opts.target_count - len(scorecards) - 1, 0)

    ranked = sorted(range(len(middle)), key=lambda i: -middle[i].quality)
    kept = set(ranked[:keep])
    dropped = [middle[i].id for i in range(len(middle)) if i not in kept]
    logger.info("Trimmed %d lowest-quality visualization(s): %s", len(dropped), ", ".join(dropped))
    return scorecards + [c for i, c in enumerate(middle) if i in kept] + [table]


def _pad(
    layout: List[ChartSuggestion],
    pool: List[ChartSuggestion],
    opts: RebalanceOptions,
) -> List[ChartSuggestion]:
    """Grow toward ``target_count``: summary cards up to the maximum, then visualizations."""
    scorecards = [c for c in layout if c.is_scorecard]
    table = layout[-1]
    middle = [c for c in layout[:-1] if not c.is_scorecard]
    source = pool + layout

    def total() -> int:
        return len(scorecards) + len(middle) + 1

    while total() < opts.target_count and len(scorecards) < opts.max_scorecards:
        fallback = synthesize_scorecard(source, len(scorecards))
        if fallback is None:
            break
        scorecards.append(fallback)

    factory = _VisualizationFactory()
    factory.index = sum(1 for c in middle if c.id.startswith("fallback-viz-"))
    while total() < opts.target_count:
        fallback = factory.make(source)
        if fallback is None:
            logger.warning(
                "Padding stopped at %d of %d chart(s): no usable columns left", total(), opts.target_count,
            )
            break
        middle.append(fallback)

    return scorecards + middle + [table]


def rebalance_charts(
    charts: Iterable[Union[ChartSuggestion, Mapping[str, Any]]],
    options: OptionsLike = None,
    rows: Optional[Sequence[Mapping[str, Any]]] = None,
) -> List[ChartSuggestion]:
    """
    Produce the final ordered dashboard.

    Candidates may be ChartSuggestion objects or raw dicts; invalid ones are
    dropped first. Raises ValidationError only for contradictory *options*.
    """
    opts = resolve_options(options)
    valid, rejected = filter_valid_suggestions(charts)

    logger.info(
        "Rebalancing %d chart(s) (%d rejected) toward %d: %d summary card(s), %d table(s), %d other",
        len(valid), rejected, opts.target_count,
        sum(c.is_scorecard for c in valid),
        sum(c.is_table for c in valid),
        sum(not c.is_scorecard and not c.is_table for c in valid),
    )

    layout = enforce_layout_constraints(valid, opts, rows)

    if len(layout) > opts.target_count:
        layout = _trim(layout, opts)
    elif len(layout) < opts.target_count:
        layout = _pad(layout, valid, opts)

    stats = get_chart_stats(layout)
    logger.info(
        "Rebalance complete: %d chart(s), %d summary card(s), %d visualization(s), %d table(s)",
        stats.total, stats.scorecards, stats.visualizations, stats.tables,
    )
    return layout


# ---------------------------------------------------------------------------
# Checks and stats
# ---------------------------------------------------------------------------

def validate_chart_layout(charts: Sequence[ChartSuggestion], options: OptionsLike = None) -> List[str]:
    """Return the violated layout invariants (empty when the layout is sound)."""
    opts = resolve_options(options)
    errors: List[str] = []

    n = len(charts)
    if n != opts.target_count:
        errors.append(f"Expected {opts.target_count} charts, got {n} (delta {n - opts.target_count:+d})")

    scorecard_count = sum(1 for c in charts if c.is_scorecard)
    if scorecard_count < opts.min_scorecards:
        errors.append(f"Too few scorecards: {scorecard_count} (min: {opts.min_scorecards})")
    if scorecard_count > opts.max_scorecards:
        errors.append(f"Too many scorecards: {scorecard_count} (max: {opts.max_scorecards})")

    if opts.require_table:
        if not any(c.is_table for c in charts):
            errors.append("Missing required table chart")
        if charts and not charts[-1].is_table:
            errors.append(f"Last chart should be table, got {charts[-1].type.value}")

    first_other = next((i for i, c in enumerate(charts) if not c.is_scorecard), None)
    if first_other is not None and first_other < scorecard_count:
        errors.append("Scorecards should be positioned first")

    return errors


def get_chart_stats(charts: Sequence[ChartSuggestion]) -> ChartStats:
    scores = [c.quality for c in charts]
    average = sum(scores) / len(scores) if scores else 0.0
    return ChartStats(
        total=len(charts),
        scorecards=sum(1 for c in charts if c.is_scorecard),
        visualizations=sum(1 for c in charts if not c.is_scorecard and not c.is_table),
        tables=sum(1 for c in charts if c.is_table),
        average_quality=int(math.floor(average + 0.5)),
        quality_distribution={
            "high": sum(1 for s in scores if s > 75),
            "medium": sum(1 for s in scores if 60 <= s <= 75),
            "low": sum(1 for s in scores if s < 60),
        },
    )
