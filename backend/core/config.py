"""Environment-driven defaults.

Loads ``.env`` once, then reads the layout constraints used when a caller
does not pass its own ``RebalanceOptions``.
"""

from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv

from core.models import ChartType, RebalanceOptions

load_dotenv()


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip() or default


def _env_int(key: str, default: int) -> int:
    raw = _env(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got '{raw}'") from exc


def _env_bool(key: str, default: bool) -> bool:
    raw = _env(key)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def default_rebalance_options() -> RebalanceOptions:
    """Build RebalanceOptions from ``DASHBOARD_*`` variables, falling back to model defaults."""
    defaults = RebalanceOptions()
    return RebalanceOptions(
        target_count=_env_int("DASHBOARD_TARGET_COUNT", defaults.target_count),
        min_scorecards=_env_int("DASHBOARD_MIN_SCORECARDS", defaults.min_scorecards),
        max_scorecards=_env_int("DASHBOARD_MAX_SCORECARDS", defaults.max_scorecards),
        min_non_scorecards=_env_int("DASHBOARD_MIN_NON_SCORECARDS", defaults.min_non_scorecards),
        require_table=_env_bool("DASHBOARD_REQUIRE_TABLE", defaults.require_table),
        fallback_chart_type=ChartType(
            _env("DASHBOARD_FALLBACK_CHART_TYPE", defaults.fallback_chart_type.value)
        ),
        table_row_limit=_env_int("DASHBOARD_TABLE_ROW_LIMIT", defaults.table_row_limit),
        table_max_columns=_env_int("DASHBOARD_TABLE_MAX_COLUMNS", defaults.table_max_columns),
    )
