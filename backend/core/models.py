"""
Core Pydantic models for the dashboard layout engine.

All domain types live here so every module shares the same vocabulary.
Wire keys stay camelCase (``dataMapping``, ``qualityScore`` ...) because they
travel unchanged between the generation service and the renderer.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SerializeAsAny,
    ValidationError,
    field_validator,
    model_validator,
)

from core.utils import column_names, has_value, to_number


# ---------------------------------------------------------------------------
# Chart types
# ---------------------------------------------------------------------------

class ChartType(str, Enum):
    scorecard = "scorecard"
    table = "table"
    bar = "bar"
    line = "line"
    area = "area"
    pie = "pie"
    scatter = "scatter"
    combo = "combo"
    # extended types: validated by the generic "some mapping" rule
    hist = "hist"
    box = "box"
    heatmap = "heatmap"
    funnel = "funnel"
    gauge = "gauge"
    cohort = "cohort"
    bullet = "bullet"
    treemap = "treemap"
    sparkline = "sparkline"
    waterfall = "waterfall"

    @classmethod
    def from_label(cls, label: Any) -> Optional["ChartType"]:
        """Resolve a free-form type label (``"Summary Card"``, ``"donut"``) to a ChartType."""
        if isinstance(label, ChartType):
            return label
        if not isinstance(label, str):
            return None
        key = label.strip().lower().replace(" ", "-")
        key = _TYPE_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return None


_TYPE_ALIASES = {
    "summary-card": "scorecard",
    "summary_card": "scorecard",
    "summarycard": "scorecard",
    "kpi": "scorecard",
    "kpi-card": "scorecard",
    "metric": "scorecard",
    "metric-card": "scorecard",
    "column": "bar",
    "histogram": "hist",
    "donut": "pie",
    "doughnut": "pie",
    "grid": "table",
    "data-table": "table",
    "data_table": "table",
}

VISUALIZATION_ROTATION = (ChartType.bar, ChartType.line, ChartType.area, ChartType.pie)


class Priority(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


class ColumnKind(str, Enum):
    numeric = "numeric"
    categorical = "categorical"
    date = "date"
    text = "text"


class ColumnSchema(BaseModel):
    """One column as reported by the schema-inference collaborator."""
    name: str
    type: ColumnKind = ColumnKind.text


# ---------------------------------------------------------------------------
# dataMapping variants (one per chart type)
# ---------------------------------------------------------------------------

# A mapping field may name one column or several.
ColumnRef = Union[str, List[str]]

# Mapping keys that never name a source column.
_NON_COLUMN_KEYS = {
    "aggregation",
    "formula",
    "formulaAlias",
    "format",
    "limit",
    "sortOrder",
    "orientation",
    "stacked",
    "prefix",
    "suffix",
    "label",
}


class DataMapping(BaseModel):
    """Base mapping. Unknown keys are kept so the renderer sees every hint."""

    model_config = ConfigDict(extra="allow", frozen=True)

    @field_validator("values", "columns", mode="before", check_fields=False)
    @classmethod
    def _listify(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [v] if v.strip() else []
        return v

    def get(self, key: str, default: Any = None) -> Any:
        return getattr(self, key, default)

    def referenced_fields(self) -> List[str]:
        """Column names this mapping points at, in key order, without duplicates."""
        seen: List[str] = []
        for key, value in self.model_dump(exclude_none=True).items():
            if key in _NON_COLUMN_KEYS:
                continue
            for name in column_names(value):
                if name not in seen:
                    seen.append(name)
        return seen


class ScorecardMapping(DataMapping):
    metric: Optional[ColumnRef] = None
    formula: Optional[str] = None
    formulaAlias: Optional[str] = None
    aggregation: Optional[str] = None
    comparison: Optional[str] = None

    @model_validator(mode="after")
    def _require_metric(self) -> "ScorecardMapping":
        if has_value(self.metric):
            return self
        if has_value(self.formula) and has_value(self.formulaAlias):
            return self
        raise ValueError("summary card requires a metric, or both formula and formulaAlias")


class TableMapping(DataMapping):
    columns: List[str] = Field(default_factory=list)
    yAxis: Optional[ColumnRef] = None
    limit: Optional[int] = None

    @model_validator(mode="after")
    def _require_columns(self) -> "TableMapping":
        if self.columns or has_value(self.yAxis):
            return self
        raise ValueError("table requires a non-empty columns list or a yAxis")


class AxisMapping(DataMapping):
    """bar / line / area."""
    xAxis: Optional[ColumnRef] = None
    category: Optional[ColumnRef] = None
    yAxis: Optional[ColumnRef] = None
    values: Optional[List[str]] = None
    aggregation: Optional[str] = None

    @model_validator(mode="after")
    def _require_axis(self) -> "AxisMapping":
        if has_value(self.xAxis) or has_value(self.category):
            return self
        raise ValueError("chart requires an xAxis or a category")


class ScatterMapping(DataMapping):
    xAxis: Optional[ColumnRef] = None
    yAxis: Optional[ColumnRef] = None
    values: Optional[List[str]] = None
    size: Optional[ColumnRef] = None
    color: Optional[ColumnRef] = None

    @model_validator(mode="after")
    def _require_axes(self) -> "ScatterMapping":
        if has_value(self.xAxis) and (has_value(self.yAxis) or has_value(self.values)):
            return self
        raise ValueError("scatter requires an xAxis and a yAxis (or values)")


class PieMapping(DataMapping):
    category: Optional[ColumnRef] = None
    value: Optional[ColumnRef] = None
    values: Optional[List[str]] = None
    aggregation: Optional[str] = None

    @model_validator(mode="after")
    def _require_category(self) -> "PieMapping":
        if has_value(self.category):
            return self
        raise ValueError("pie requires a category")


class ComboMapping(DataMapping):
    xAxis: Optional[ColumnRef] = None
    yAxis: Optional[ColumnRef] = None
    yAxis1: Optional[ColumnRef] = None
    yAxis2: Optional[ColumnRef] = None

    @model_validator(mode="after")
    def _require_axes(self) -> "ComboMapping":
        if has_value(self.xAxis) and (has_value(self.yAxis) or has_value(self.yAxis1)):
            return self
        raise ValueError("combo requires an xAxis and a yAxis (or yAxis1)")


class GenericMapping(DataMapping):
    @model_validator(mode="after")
    def _require_any(self) -> "GenericMapping":
        if any(has_value(v) for v in (self.model_extra or {}).values()):
            return self
        raise ValueError("dataMapping needs at least one non-empty key")


MAPPING_MODELS: Dict[ChartType, type] = {
    ChartType.scorecard: ScorecardMapping,
    ChartType.table: TableMapping,
    ChartType.bar: AxisMapping,
    ChartType.line: AxisMapping,
    ChartType.area: AxisMapping,
    ChartType.scatter: ScatterMapping,
    ChartType.pie: PieMapping,
    ChartType.combo: ComboMapping,
}


def mapping_model_for(chart_type: ChartType) -> type:
    return MAPPING_MODELS.get(chart_type, GenericMapping)


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    msg = str(err.get("msg", ""))
    return msg.removeprefix("Value error, ")


# ---------------------------------------------------------------------------
# Data transform spec
# ---------------------------------------------------------------------------

class FilterOperator(str, Enum):
    equals = "equals"
    not_equals = "not_equals"
    greater_than = "greater_than"
    less_than = "less_than"
    contains = "contains"
    not_contains = "not_contains"
    in_ = "in"
    not_in = "not_in"
    is_null = "is_null"
    is_not_null = "is_not_null"


class AggregateFunction(str, Enum):
    sum = "sum"
    avg = "avg"
    count = "count"
    min = "min"
    max = "max"
    count_distinct = "count_distinct"
    median = "median"
    mode = "mode"
    std = "std"
    variance = "variance"
    percentile = "percentile"


_FUNCTION_ALIASES = {"mean": "avg", "average": "avg", "stddev": "std", "var": "variance"}


class SortDirection(str, Enum):
    asc = "asc"
    desc = "desc"


class FilterCondition(BaseModel):
    column: str
    operator: FilterOperator
    value: Any = None

    @field_validator("operator", mode="before")
    @classmethod
    def _lower(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class AggregationSpec(BaseModel):
    column: str
    function: AggregateFunction
    alias: Optional[str] = None
    percentile: Optional[float] = Field(None, ge=0, le=100)

    @field_validator("function", mode="before")
    @classmethod
    def _normalize_function(cls, v: Any) -> Any:
        if isinstance(v, str):
            key = v.strip().lower()
            return _FUNCTION_ALIASES.get(key, key)
        return v

    @property
    def output_key(self) -> str:
        return self.alias or f"{self.function.value}_{self.column}"


class OrderBySpec(BaseModel):
    column: str
    direction: SortDirection = SortDirection.asc

    @field_validator("direction", mode="before")
    @classmethod
    def _lower(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class ColumnTransform(BaseModel):
    name: str
    expression: str
    alias: Optional[str] = None

    @property
    def target(self) -> str:
        return self.alias or self.name


class DataTransformSpec(BaseModel):
    """Per-chart transform. Also accepts the legacy keys ``columns``, ``filter`` and ``groupBy``."""

    model_config = ConfigDict(populate_by_name=True)

    column_transforms: List[ColumnTransform] = Field(
        default_factory=list,
        validation_alias=AliasChoices("columnTransforms", "columns", "column_transforms"),
        serialization_alias="columnTransforms",
    )
    filters: List[FilterCondition] = Field(
        default_factory=list,
        validation_alias=AliasChoices("filters", "filter"),
    )
    group_by_columns: Optional[List[str]] = Field(
        None,
        validation_alias=AliasChoices("groupByColumns", "groupBy", "group_by_columns"),
        serialization_alias="groupByColumns",
    )
    aggregations: List[AggregationSpec] = Field(default_factory=list)
    order_by: List[OrderBySpec] = Field(
        default_factory=list,
        validation_alias=AliasChoices("orderBy", "order_by"),
        serialization_alias="orderBy",
    )
    limit: Optional[int] = Field(None, ge=0)


# ---------------------------------------------------------------------------
# Chart suggestion
# ---------------------------------------------------------------------------

class ChartSuggestion(BaseModel):
    """One chart spec. Immutable once built; adjust with ``model_copy(update=...)``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    type: ChartType
    title: str = Field(..., min_length=1)
    description: str = ""
    data_mapping: SerializeAsAny[DataMapping] = Field(..., alias="dataMapping")
    data_transform: Optional[DataTransformSpec] = Field(None, alias="dataTransform")
    quality_score: Optional[float] = Field(None, alias="qualityScore")
    confidence: Optional[float] = None
    reasoning: str = ""
    tags: List[str] = Field(default_factory=list)
    priority: Priority = Priority.medium

    @model_validator(mode="before")
    @classmethod
    def _select_mapping_variant(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        chart_type = ChartType.from_label(data.get("type"))
        if chart_type is None:
            return data
        data = dict(data)
        data["type"] = chart_type
        key = "dataMapping" if "dataMapping" in data else "data_mapping"
        raw = data.get(key)
        model = mapping_model_for(chart_type)
        if isinstance(raw, model):
            return data
        if isinstance(raw, DataMapping):
            raw = raw.model_dump(exclude_none=True)
        try:
            data[key] = model.model_validate(raw if raw is not None else {})
        except ValidationError as exc:
            raise ValueError(f"{chart_type.value}: {_first_error(exc)}") from exc
        return data

    @field_validator("quality_score", "confidence", mode="before")
    @classmethod
    def _numeric_score(cls, v: Any) -> Any:
        if v is None or isinstance(v, (int, float)):
            return v
        return to_number(v)

    @field_validator("priority", mode="before")
    @classmethod
    def _lenient_priority(cls, v: Any) -> Any:
        if isinstance(v, Priority):
            return v
        key = str(v or "").strip().lower()
        return key if key in Priority.__members__ else Priority.medium

    @field_validator("description", "reasoning", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Any:
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        if not isinstance(v, (list, tuple)):
            v = [v]
        return [str(t).strip() for t in v if t is not None and str(t).strip()]

    @property
    def quality(self) -> float:
        """``qualityScore`` if present, else ``confidence``, else 0."""
        if self.quality_score is not None:
            return self.quality_score
        if self.confidence is not None:
            return self.confidence
        return 0.0

    @property
    def is_scorecard(self) -> bool:
        return self.type is ChartType.scorecard

    @property
    def is_table(self) -> bool:
        return self.type is ChartType.table

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Rebalancing
# ---------------------------------------------------------------------------

class RebalanceOptions(BaseModel):
    """Layout constraints. Contradictory values are a caller bug and raise."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    target_count: int = Field(16, alias="targetCount", ge=1)
    min_scorecards: int = Field(4, alias="minScorecards", ge=0)
    max_scorecards: int = Field(6, alias="maxScorecards", ge=0)
    min_non_scorecards: int = Field(8, alias="minNonScorecards", ge=0)
    require_table: bool = Field(True, alias="requireTable")
    fallback_chart_type: ChartType = Field(ChartType.table, alias="fallbackChartType")
    table_row_limit: int = Field(100, alias="tableRowLimit", ge=1)
    table_max_columns: int = Field(10, alias="tableMaxColumns", ge=1)

    @model_validator(mode="after")
    def _check_bounds(self) -> "RebalanceOptions":
        if self.min_scorecards > self.max_scorecards:
            raise ValueError(
                f"minScorecards ({self.min_scorecards}) exceeds maxScorecards ({self.max_scorecards})"
            )
        floor = max(self.min_non_scorecards, 1)
        if self.min_scorecards + floor > self.target_count:
            raise ValueError(
                f"targetCount ({self.target_count}) cannot hold {self.min_scorecards} summary cards "
                f"plus {floor} other charts"
            )
        if (self.fallback_chart_type is not ChartType.table
                and self.fallback_chart_type not in VISUALIZATION_ROTATION):
            raise ValueError(
                f"fallbackChartType must be table or one of "
                f"{', '.join(t.value for t in VISUALIZATION_ROTATION)}"
            )
        return self


class ChartStats(BaseModel):
    total: int = 0
    scorecards: int = 0
    visualizations: int = 0
    tables: int = 0
    average_quality: int = 0
    quality_distribution: Dict[str, int] = Field(
        default_factory=lambda: {"high": 0, "medium": 0, "low": 0}
    )


class DataValidationResult(BaseModel):
    is_valid: bool
    reason: Optional[str] = None
    suggestions: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class DashboardLayout(BaseModel):
    charts: List[ChartSuggestion] = Field(default_factory=list)
    violations: List[str] = Field(default_factory=list)
    rejected: int = 0
    shortfall: int = 0
    notice: Optional[str] = None
