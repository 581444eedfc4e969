import json

import pytest


DASHBOARD_VARS = (
    "DASHBOARD_TARGET_COUNT",
    "DASHBOARD_MIN_SCORECARDS",
    "DASHBOARD_MAX_SCORECARDS",
    "DASHBOARD_MIN_NON_SCORECARDS",
    "DASHBOARD_REQUIRE_TABLE",
    "DASHBOARD_FALLBACK_CHART_TYPE",
    "DASHBOARD_TABLE_ROW_LIMIT",
    "DASHBOARD_TABLE_MAX_COLUMNS",
)


@pytest.fixture(autouse=True)
def clean_dashboard_env(monkeypatch):
    """Layout defaults come from the model unless a test sets DASHBOARD_* itself."""
    for key in DASHBOARD_VARS:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def sales_rows():
    """Small sales dataset used across pipeline tests."""
    regions = ["East", "West", "North", "South", "East", "West"]
    months = ["2024-01", "2024-02", "2024-03", "2024-04", "2024-05", "2024-06"]
    return [
        {
            "Month": month,
            "Region": region,
            "Sales": 100 + 25 * i,
            "Revenue": f"${1000 + 150 * i:,}",
            "Units": 3 + i,
        }
        for i, (month, region) in enumerate(zip(months, regions))
    ]


@pytest.fixture
def recommendation_charts():
    """3 summary cards, 2 bar charts and 1 table: the classic under-supplied answer."""
    return [
        {"id": "sc-rev", "type": "scorecard", "title": "Total Revenue",
         "dataMapping": {"metric": "Revenue", "aggregation": "sum"}, "qualityScore": 92},
        {"id": "sc-units", "type": "scorecard", "title": "Units Sold",
         "dataMapping": {"metric": "Units", "aggregation": "sum"}, "qualityScore": 88},
        {"id": "sc-sales", "type": "summary-card", "title": "Average Sale",
         "dataMapping": {"metric": "Sales", "aggregation": "avg"}, "qualityScore": 81},
        {"id": "bar-region", "type": "bar", "title": "Sales by Region",
         "dataMapping": {"category": "Region", "values": ["Sales"]}, "qualityScore": 90},
        {"id": "bar-month", "type": "bar", "title": "Units by Month",
         "dataMapping": {"xAxis": "Month", "yAxis": "Units"}, "qualityScore": 75},
        {"id": "tbl", "type": "table", "title": "All Sales",
         "dataMapping": {"columns": ["Month", "Region", "Sales"]}, "qualityScore": 70},
    ]


@pytest.fixture
def recommendation_text(recommendation_charts):
    """Generator-style answer: prose around a fenced JSON block."""
    return (
        "Here is a dashboard for your sales data.\n\n"
        "```json\n" + json.dumps(recommendation_charts, indent=2) + "\n```\n\n"
        "Let me know if you want more detail."
    )
