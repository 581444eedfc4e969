"""
Tests for the derived-column expression evaluator.
"""

import pytest

from skills.expression import ExpressionError, evaluate_expression


ROW = {
    "Revenue": 100,
    "Units": 4,
    "Days": 5,
    "Zero": 0,
    "Price": "$12.50",
    "Amount": "1,200",
    "Qty": "7.9 pcs",
    "Name": "Widget",
    "Profit/Loss": -3,
    "Spend/Day": 100,
    "Clicks": 4,
}


class TestColumnLookup:
    """Tests for resolving bare tokens against the row."""

    def test_exact_key(self):
        """Test that an exact column name returns the cell value."""
        assert evaluate_expression("Revenue", ROW) == 100

    def test_key_with_surrounding_whitespace(self):
        """Test that surrounding whitespace is ignored."""
        assert evaluate_expression("  Units ", ROW) == 4

    def test_key_containing_slash_wins_over_division(self):
        """Test that a column named with a slash is looked up, not divided."""
        assert evaluate_expression("Profit/Loss", ROW) == -3

    def test_unknown_token_is_literal(self):
        """Test that an unknown token comes back unchanged."""
        assert evaluate_expression("not_a_column", ROW) == "not_a_column"

    def test_quoted_literal(self):
        """Test that quoted text is a literal even when it names a column."""
        assert evaluate_expression('"Revenue"', ROW) == "Revenue"
        assert evaluate_expression("'hello'", ROW) == "hello"


class TestCast:
    """Tests for CAST(expr AS type)."""

    @pytest.mark.parametrize("expression,expected", [
        ("CAST(Units AS float)", 4.0),
        ("CAST(Qty AS float)", 7.9),
        ("CAST(Qty AS int)", 7),
        ("CAST(Name AS float)", 0.0),
        ("CAST(Name AS int)", 0),
        ("CAST(Revenue AS string)", "100"),
        ("cast(Units as DECIMAL(10,2))", 4.0),
    ])
    def test_cast_types(self, expression, expected):
        """Test numeric prefix parsing and the target Python type of each cast."""
        result = evaluate_expression(expression, ROW)
        assert result == expected
        assert type(result) is type(expected)

    def test_cast_without_as_raises(self):
        """Test that a CAST missing its AS clause is unresolvable."""
        with pytest.raises(ExpressionError):
            evaluate_expression("CAST(Units)", ROW)


class TestReplace:
    """Tests for REPLACE(expr, search, replacement)."""

    def test_global_replace(self):
        """Test that every occurrence is replaced."""
        assert evaluate_expression('REPLACE(Amount, ",", "")', ROW) == "1200"

    def test_replace_is_literal_not_regex(self):
        """Test that the search text is matched literally."""
        assert evaluate_expression('REPLACE("a.b.c", ".", "-")', ROW) == "a-b-c"

    def test_nested_in_cast(self):
        """Test REPLACE nested inside CAST."""
        assert evaluate_expression('CAST(REPLACE(Price, "$", "") AS float)', ROW) == 12.5

    def test_wrong_arity_raises(self):
        """Test that REPLACE with two arguments is unresolvable."""
        with pytest.raises(ExpressionError):
            evaluate_expression('REPLACE(Amount, ",")', ROW)


class TestDivision:
    """Tests for numeric division between sub-expressions."""

    def test_simple(self):
        """Test dividing one column by another."""
        assert evaluate_expression("Revenue / Units", ROW) == 25.0

    def test_left_associative(self):
        """Test that chained division runs left to right."""
        assert evaluate_expression("Revenue / Units / Days", ROW) == 5.0

    def test_parenthesized(self):
        """Test that parentheses group a division."""
        assert evaluate_expression("(Revenue / Units) / Days", ROW) == 5.0

    def test_slashed_column_as_operand(self):
        """Test that a spaced slash divides while a bare slash stays part of the column name."""
        assert evaluate_expression("Spend/Day / Clicks", ROW) == 25.0
        assert evaluate_expression("Revenue / Spend/Day", ROW) == 1.0

    def test_bare_slash_between_columns(self):
        """Test that an unspaced slash still divides when no column carries that name."""
        assert evaluate_expression("Revenue/Units", ROW) == 25.0

    def test_numeric_strings_are_coerced(self):
        """Test that a cleaned numeric string can be divided."""
        assert evaluate_expression('CAST(REPLACE(Amount, ",", "") AS float) / Units', ROW) == 300.0

    def test_division_by_zero_raises(self):
        """Test that dividing by zero is unresolvable."""
        with pytest.raises(ExpressionError):
            evaluate_expression("Revenue / Zero", ROW)

    def test_non_numeric_operand_raises(self):
        """Test that a text operand is unresolvable."""
        with pytest.raises(ExpressionError):
            evaluate_expression("Name / Units", ROW)


class TestInputGuards:
    """Tests for malformed expression input."""

    def test_empty_expression(self):
        """Test that a blank expression raises."""
        with pytest.raises(ExpressionError):
            evaluate_expression("   ", ROW)

    def test_non_string_expression(self):
        """Test that a non-string expression raises."""
        with pytest.raises(ExpressionError):
            evaluate_expression(42, ROW)
