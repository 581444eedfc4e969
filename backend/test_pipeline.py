"""
End-to-end tests: recommendation text -> dashboard, per-chart rows, config and the generator adapter.
"""

import json

import pytest
from langchain_core.language_models import FakeListChatModel

from app.llm import LLMError, build_user_prompt, generate_recommendation_text
from app.llm_loader import LLMConfigError, get_chat_model
from core.config import default_rebalance_options
from core.models import ChartType, ColumnSchema, RebalanceOptions
from server.orchestrator import build_dashboard, recommend_dashboard, render_chart_rows


COLUMNS = [
    ColumnSchema(name="Month", type="date"),
    {"name": "Region", "type": "categorical"},
    ColumnSchema(name="Sales", type="numeric"),
    ColumnSchema(name="Revenue", type="numeric"),
    "Units",
]


class TestBuildDashboard:
    """Tests for turning recommendation text into a dashboard."""

    def test_full_layout(self, recommendation_text):
        """Test a complete answer producing a sound 16-chart layout."""
        layout = build_dashboard(recommendation_text, RebalanceOptions())
        assert len(layout.charts) == 16
        assert layout.violations == []
        assert layout.rejected == 0
        assert layout.shortfall == 0
        assert layout.notice is None
        assert layout.charts[-1].id == "tbl"

    def test_rejected_candidates_counted(self, recommendation_charts):
        """Test that invalid candidates are dropped and counted."""
        bad = {"id": "bad", "type": "scorecard", "title": "Empty", "dataMapping": {}}
        text = "```json\n" + json.dumps(recommendation_charts + [bad]) + "\n```"
        layout = build_dashboard(text, RebalanceOptions())
        assert layout.rejected == 1
        assert "bad" not in {c.id for c in layout.charts}

    def test_unusable_text_gives_notice_not_error(self):
        """Test that unusable text yields a notice instead of an exception."""
        layout = build_dashboard("Sorry, I cannot help with that.", RebalanceOptions())
        assert layout.shortfall == 15
        assert layout.notice
        assert layout.charts[-1].is_table
        assert any("Expected 16 charts" in v for v in layout.violations)

    def test_rows_drop_unrenderable_charts(self, recommendation_charts, sales_rows):
        """Test that rows filter out charts whose data would not draw."""
        flat = {"id": "flat", "type": "bar", "title": "Nothing", "qualityScore": 99,
                "dataMapping": {"category": "Region", "values": ["Missing"]}}
        text = "```json\n" + json.dumps(recommendation_charts + [flat]) + "\n```"
        layout = build_dashboard(text, RebalanceOptions(), rows=sales_rows)
        assert layout.rejected == 1
        assert "flat" not in {c.id for c in layout.charts}
        assert len(layout.charts) == 16

    def test_null_description_chart_kept(self, recommendation_charts):
        """Test that a chart with null text fields and list-valued axes survives the pipeline."""
        loose = {"id": "loose", "type": "bar", "title": "Units by Region", "qualityScore": 95,
                 "description": None, "reasoning": None,
                 "dataMapping": {"xAxis": ["Region"], "yAxis": ["Units"]}}
        text = "```json\n" + json.dumps(recommendation_charts + [loose]) + "\n```"
        layout = build_dashboard(text, RebalanceOptions())
        assert layout.rejected == 0
        assert "loose" in {c.id for c in layout.charts}

    def test_options_from_mapping(self, recommendation_text):
        """Test that options may be passed as a camelCase mapping."""
        layout = build_dashboard(recommendation_text, {"targetCount": 10, "minNonScorecards": 5})
        assert len(layout.charts) == 10
        assert layout.violations == []


class TestRenderChartRows:
    """Tests for the rows handed to the renderer."""

    def test_transform_applied(self, sales_rows):
        """Test that a chart's dataTransform shapes its rows."""
        chart = {
            "id": "c", "type": "bar", "title": "Sales by Region",
            "dataMapping": {"category": "Region", "values": ["total"]},
            "dataTransform": {
                "groupByColumns": ["Region"],
                "aggregations": [{"column": "Sales", "function": "sum", "alias": "total"}],
                "orderBy": [{"column": "total", "direction": "desc"}],
                "limit": 2,
            },
        }
        rows = render_chart_rows(chart, sales_rows)
        assert rows == [{"Region": "West", "total": 350}, {"Region": "East", "total": 300}]

    def test_table_limit(self, sales_rows):
        """Test that a table's limit caps its rows."""
        chart = {"id": "t", "type": "table", "title": "T", "dataMapping": {"columns": ["Region"], "limit": 4}}
        assert len(render_chart_rows(chart, sales_rows)) == 4

    def test_rows_passed_through(self, sales_rows):
        """Test that charts without a transform get the rows as-is."""
        chart = {"id": "l", "type": "line", "title": "L", "dataMapping": {"xAxis": "Month", "yAxis": "Sales"}}
        assert render_chart_rows(chart, sales_rows) == sales_rows


class TestConfig:
    """Tests for environment-driven defaults."""

    def test_defaults(self):
        """Test that an empty environment gives the model defaults."""
        assert default_rebalance_options() == RebalanceOptions()

    def test_env_overrides(self, monkeypatch):
        """Test that DASHBOARD_* variables override the defaults."""
        monkeypatch.setenv("DASHBOARD_TARGET_COUNT", "12")
        monkeypatch.setenv("DASHBOARD_REQUIRE_TABLE", "false")
        monkeypatch.setenv("DASHBOARD_FALLBACK_CHART_TYPE", "bar")
        opts = default_rebalance_options()
        assert opts.target_count == 12
        assert opts.require_table is False
        assert opts.fallback_chart_type is ChartType.bar

    def test_bad_integer(self, monkeypatch):
        """Test that a non-integer count names the offending variable."""
        monkeypatch.setenv("DASHBOARD_TARGET_COUNT", "sixteen")
        with pytest.raises(ValueError, match="DASHBOARD_TARGET_COUNT"):
            default_rebalance_options()

    def test_build_dashboard_uses_env(self, monkeypatch, recommendation_text):
        """Test that build_dashboard falls back to the environment defaults."""
        monkeypatch.setenv("DASHBOARD_TARGET_COUNT", "14")
        assert len(build_dashboard(recommendation_text).charts) == 14


class TestGenerator:
    """Tests for the recommendation text generator."""

    def test_prompt_lists_schema_and_samples(self, sales_rows):
        """Test that the user prompt lists columns, target count and sample rows."""
        prompt = build_user_prompt(COLUMNS, sales_rows, target_count=16)
        assert "- Month (date)" in prompt
        assert "- Region (categorical)" in prompt
        assert "- Units (text)" in prompt
        assert "Recommend 16 dashboard charts" in prompt
        assert "East" in prompt

    def test_returns_model_text(self, sales_rows):
        """Test that the model's answer is returned as text."""
        model = FakeListChatModel(responses=["CHART_SUGGESTION\nType: bar\nTitle: T\nEND_SUGGESTION"])
        text = generate_recommendation_text(COLUMNS, sales_rows, chat_model=model)
        assert text.startswith("CHART_SUGGESTION")

    def test_empty_answer_raises(self, sales_rows):
        """Test that two empty answers raise LLMError."""
        model = FakeListChatModel(responses=["", "   "])
        with pytest.raises(LLMError):
            generate_recommendation_text(COLUMNS, sales_rows, chat_model=model)

    def test_retry_after_empty_answer(self, sales_rows):
        """Test that an empty first answer is retried."""
        model = FakeListChatModel(responses=["", "second try"])
        assert generate_recommendation_text(COLUMNS, sales_rows, chat_model=model) == "second try"

    def test_recommend_dashboard(self, recommendation_text, sales_rows):
        """Test generation followed by dashboard building."""
        model = FakeListChatModel(responses=[recommendation_text])
        layout = recommend_dashboard(COLUMNS, sales_rows, RebalanceOptions(), chat_model=model)
        assert len(layout.charts) == 16
        assert layout.charts[-1].id == "tbl"
        assert layout.violations == []


class TestProviderSelection:
    """Tests for chat model provider selection."""

    def test_unknown_provider(self, monkeypatch):
        """Test that an unknown provider raises LLMConfigError."""
        monkeypatch.setenv("LLM_PROVIDER", "carrier-pigeon")
        with pytest.raises(LLMConfigError, match="Unsupported LLM_PROVIDER"):
            get_chat_model()

    def test_missing_key(self, monkeypatch):
        """Test that a provider without an API key raises LLMConfigError."""
        monkeypatch.setenv("LLM_PROVIDER", "groq")
        monkeypatch.delenv("LLM_API_KEY", raising=False)
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        with pytest.raises(LLMConfigError):
            get_chat_model()
