"""
Tests for the two-pass suggestion parser.
"""

import logging

import pytest

from skills.parse import (
    MARKER_CONFIDENCE,
    MARKER_REASONING,
    decode_structured_block,
    extract_marker_blocks,
    extract_structured_blocks,
    parse_suggestions,
)
from skills.validate import validate_suggestion


MARKER_TEXT = """Some intro.

CHART_SUGGESTION
Type: Bar
Title: Revenue by Region
Columns: Region, Revenue
Description: Compares revenue across regions
END_SUGGESTION

CHART_SUGGESTION
Type: Summary Card
Title: Total Units
Columns: Units
END_SUGGESTION
"""


class TestStructuredBlocks:
    """Tests for fenced JSON blocks."""

    def test_tagged_and_untagged_fences(self):
        """Test that json-tagged and bare JSON fences are read and other fences skipped."""
        text = (
            "```json\n{\"type\": \"bar\"}\n```\n"
            "```\n[{\"type\": \"pie\"}]\n```\n"
            "```python\nprint('not data')\n```\n"
            "```\nplain text block\n```\n"
        )
        assert extract_structured_blocks(text) == ['{"type": "bar"}', '[{"type": "pie"}]']

    @pytest.mark.parametrize("block,count", [
        ('{"type": "bar", "title": "A"}', 1),
        ('[{"type": "bar"}, {"type": "line"}, 3]', 2),
        ('{"charts": [{"type": "bar"}, {"type": "pie"}]}', 2),
        ('{"recommendations": [{"type": "table"}]}', 1),
    ])
    def test_decode_shapes(self, block, count):
        """Test single objects, arrays and wrapper objects."""
        assert len(decode_structured_block(block)) == count

    def test_repair_pass(self):
        """Test that Python-style literals, single quotes and trailing commas are repaired."""
        block = "{'type': 'bar', 'title': 'Sales', 'stacked': True, 'dataMapping': {'xAxis': 'Region',},}"
        decoded = decode_structured_block(block)
        assert decoded == [{"type": "bar", "title": "Sales", "stacked": True, "dataMapping": {"xAxis": "Region"}}]

    def test_scalar_block_rejected(self):
        """Test that a scalar block raises ValueError."""
        with pytest.raises(ValueError):
            decode_structured_block("42")


class TestMarkerBlocks:
    """Tests for CHART_SUGGESTION marker blocks."""

    def test_key_value_lines(self):
        """Test that each block becomes a lower-cased key/value dict."""
        blocks = extract_marker_blocks(MARKER_TEXT)
        assert len(blocks) == 2
        assert blocks[0]["type"] == "Bar"
        assert blocks[0]["columns"] == "Region, Revenue"
        assert "description" not in blocks[1]

    def test_value_may_contain_colons(self):
        """Test that only the first colon separates key from value."""
        text = "CHART_SUGGESTION\nType: line\nTitle: Sales: 2024 vs 2025\nEND_SUGGESTION"
        assert extract_marker_blocks(text)[0]["title"] == "Sales: 2024 vs 2025"


class TestParseSuggestions:
    """Tests for the combined two-pass parser."""

    def test_marker_candidates(self):
        """Test the candidates built from marker blocks."""
        bar, card = parse_suggestions(MARKER_TEXT)
        assert bar["id"] == "ai-suggestion-text-0"
        assert bar["type"] == "bar"
        assert bar["dataMapping"] == {"xAxis": "Region", "yAxis": "Revenue"}
        assert bar["confidence"] == MARKER_CONFIDENCE
        assert bar["priority"] == "medium"
        assert bar["reasoning"] == MARKER_REASONING
        assert card["type"] == "scorecard"
        assert card["dataMapping"] == {"metric": "Units"}

    @pytest.mark.parametrize("type_label,columns,mapping", [
        ("table", "A, B, C", {"columns": ["A", "B", "C"]}),
        ("pie", "Region, Sales", {"category": "Region", "value": "Sales"}),
        ("donut", "Region", {"category": "Region"}),
        ("line", "", {}),
    ])
    def test_marker_columns_by_type(self, type_label, columns, mapping):
        """Test how the Columns line maps to each chart type."""
        text = f"CHART_SUGGESTION\nType: {type_label}\nTitle: T\nColumns: {columns}\nEND_SUGGESTION"
        (candidate,) = parse_suggestions(text)
        assert candidate["dataMapping"] == mapping

    def test_marker_without_title_is_discarded(self, caplog):
        """Test that a marker block without a title is logged and skipped."""
        text = "CHART_SUGGESTION\nType: bar\nColumns: A, B\nEND_SUGGESTION"
        with caplog.at_level(logging.WARNING, logger="skills.parse"):
            assert parse_suggestions(text) == []
        assert any("missing Type or Title" in r.getMessage() for r in caplog.records)

    def test_structured_before_marker(self):
        """Test that structured candidates come before marker candidates."""
        text = "```json\n{\"type\": \"pie\", \"title\": \"P\"}\n```\n" + MARKER_TEXT
        candidates = parse_suggestions(text)
        assert [c["id"] for c in candidates] == [
            "ai-suggestion-0", "ai-suggestion-text-0", "ai-suggestion-text-1",
        ]

    def test_malformed_block_skipped_others_kept(self, caplog):
        """Test that one broken block does not stop the others."""
        text = (
            "```json\n{\"type\": \"bar\", \"title\": \n```\n"
            "```json\n[{\"id\": \"keep\", \"type\": \"line\", \"title\": \"L\"}]\n```"
        )
        with caplog.at_level(logging.WARNING, logger="skills.parse"):
            candidates = parse_suggestions(text)
        assert [c["id"] for c in candidates] == ["keep"]
        assert any("Discarding structured block 0" in r.getMessage() for r in caplog.records)

    def test_ids_assigned_only_when_missing(self):
        """Test that given ids are kept and missing ones follow position."""
        text = '```json\n[{"type": "bar"}, {"id": "mine", "type": "bar"}, {"type": "bar"}]\n```'
        assert [c["id"] for c in parse_suggestions(text)] == ["ai-suggestion-0", "mine", "ai-suggestion-2"]

    def test_type_aliases_normalized(self):
        """Test that type labels resolve to canonical chart types."""
        text = '```json\n[{"type": "KPI"}, {"type": "column"}, {"type": "data-table"}, {"type": "sankey"}]\n```'
        assert [c["type"] for c in parse_suggestions(text)] == ["scorecard", "bar", "table", "sankey"]

    def test_legacy_chart_config(self):
        """Test conversion of chartConfig and tableConfig into dataMapping."""
        text = (
            '```json\n[{"type": "line", "title": "Trend", "chartConfig": {"x": "Month", "y": ["Sales"]}},'
            ' {"type": "table", "title": "Rows", "tableConfig": {"columns": [{"key": "A"}, {"key": "B"}]}}]\n```'
        )
        line, table = parse_suggestions(text)
        assert line["dataMapping"] == {"xAxis": "Month", "yAxis": ["Sales"]}
        assert "chartConfig" not in line
        assert table["dataMapping"] == {"columns": ["A", "B"]}

    def test_existing_data_mapping_wins_over_legacy(self):
        """Test that an explicit dataMapping is not overwritten."""
        text = '```json\n{"type": "bar", "dataMapping": {"category": "C"}, "chartConfig": {"x": "X"}}\n```'
        (candidate,) = parse_suggestions(text)
        assert candidate["dataMapping"] == {"category": "C"}

    def test_invalid_data_transform_dropped(self):
        """Test that an invalid dataTransform is removed from the candidate."""
        text = (
            '```json\n{"type": "bar", "title": "B", "dataMapping": {"xAxis": "A"},'
            ' "dataTransform": {"filters": [{"column": "A", "operator": "between"}]}}\n```'
        )
        (candidate,) = parse_suggestions(text)
        assert "dataTransform" not in candidate

    def test_null_description_survives(self):
        """Test that null text fields reach the validator as candidates."""
        text = (
            '```json\n{"type": "bar", "title": "B", "description": null, "reasoning": null,'
            ' "tags": ["sales", 2024], "dataMapping": {"xAxis": ["Region"], "yAxis": ["Sales"]}}\n```'
        )
        (candidate,) = parse_suggestions(text)
        chart, reason = validate_suggestion(candidate)
        assert reason is None
        assert chart.description == ""
        assert chart.tags == ["sales", "2024"]

    def test_no_blocks(self):
        """Test that text without blocks yields no candidates."""
        assert parse_suggestions("I could not find anything to chart.") == []
        assert parse_suggestions("") == []
