"""
Shared utility helpers.

Pure functions: no I/O, no side effects.
"""

from __future__ import annotations

import math
from typing import Any, List, Optional

import numpy as np
import pandas as pd


# ---------------------------------------------------------------------------
# Value predicates
# ---------------------------------------------------------------------------

def is_number(val: Any) -> bool:
    """True for finite int/float values (bools excluded)."""
    if isinstance(val, bool) or not isinstance(val, (int, float, np.integer, np.floating)):
        return False
    return math.isfinite(float(val))


def is_blank(val: Any) -> bool:
    """None, empty string, or NaN."""
    if val is None:
        return True
    if isinstance(val, str):
        return val == ""
    if isinstance(val, float):
        return math.isnan(val)
    return False


def has_value(val: Any) -> bool:
    """Truthiness for mapping fields: non-blank strings, non-empty lists."""
    if val is None:
        return False
    if isinstance(val, str):
        return bool(val.strip())
    if isinstance(val, (list, tuple)):
        return any(has_value(v) for v in val)
    if isinstance(val, dict):
        return bool(val)
    return bool(val)


def as_text(val: Any) -> str:
    """Render a cell as text: None -> '', integral floats without the '.0'."""
    if val is None:
        return ""
    if isinstance(val, bool):
        return "true" if val else "false"
    if isinstance(val, float) and val.is_integer():
        return str(int(val))
    return str(val)


def column_names(value: Any) -> List[str]:
    """Flatten a mapping value (str | list[str]) into non-blank column names."""
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [v for v in value if isinstance(v, str) and v.strip()]
    return []


# ---------------------------------------------------------------------------
# Smart numeric parsing (currency, SI suffixes, percentages)
# ---------------------------------------------------------------------------

_SUFFIX_MAP = {
    "k": 1_000.0,
    "m": 1_000_000.0,
    "mm": 1_000_000.0,
    "b": 1_000_000_000.0,
    "bn": 1_000_000_000.0,
    "t": 1_000_000_000_000.0,
}


def smart_numeric_value(val) -> float:
    """Parse a single value that might be currency, SI-suffixed, or percentage."""
    if val is None:
        return np.nan
    if isinstance(val, (int, float, np.integer, np.floating)):
        return float(val)
    text = str(val).strip()
    if not text:
        return np.nan
    text = text.replace(",", "").replace("$", "").replace("€", "").replace("£", "")
    if text.endswith("%"):
        inner = text[:-1].strip()
        try:
            return float(inner) / 100.0
        except ValueError:
            return np.nan
    lower = text.lower()
    if lower in {"n/a", "na", "nan", "none", "null", "-", "--", "—"}:
        return np.nan

    for suffix in sorted(_SUFFIX_MAP.keys(), key=len, reverse=True):
        if lower.endswith(suffix):
            num_part = text[: -len(suffix)]
            try:
                return float(num_part) * _SUFFIX_MAP[suffix]
            except ValueError:
                return np.nan

    try:
        return float(text)
    except ValueError:
        return np.nan


def smart_numeric_series(series: pd.Series) -> pd.Series:
    """Coerce a Series to numeric, parsing currency/SI/percent strings."""
    if pd.api.types.is_numeric_dtype(series) and not pd.api.types.is_bool_dtype(series):
        return pd.to_numeric(series, errors="coerce")
    converted = series.map(smart_numeric_value)
    return pd.to_numeric(converted, errors="coerce")


def to_number(val: Any) -> Optional[float]:
    """Finite float for *val*, or None when it is not numeric."""
    num = smart_numeric_value(val)
    if num is None or not math.isfinite(num):
        return None
    return num
