"""Tests for expression parsing, normalization and evaluation."""
import math

import pytest

from snapcalc.expression import (
    NO_EXPRESSION_SENTINEL,
    MathExpressionParser,
    SafeEvaluator,
    format_for_display,
    looks_like_math,
    tokenize,
)
from snapcalc.types import ExpressionComplexity


@pytest.fixture
def parser():
    return MathExpressionParser()


class TestParse:
    """Test parsing raw inference output."""

    def test_moderate_expression(self, parser):
        """Test the canonical precedence example."""
        parsed = parser.parse("2 + 3 * 4")

        assert parsed.is_valid is True
        assert parsed.normalized_expression == "2 + 3 * 4"
        assert parsed.operands == (2, 3, 4)
        assert parsed.operators == ("+", "*")
        assert parsed.complexity == ExpressionComplexity.MODERATE
        assert parser.evaluate(parsed.normalized_expression).result == 14

    def test_simple_expression(self, parser):
        """Test a single binary operation."""
        parsed = parser.parse("25*0.5")

        assert parsed.is_valid is True
        assert parsed.normalized_expression == "25 * 0.5"
        assert parsed.operands == (25, 0.5)
        assert parsed.complexity == ExpressionComplexity.SIMPLE

    def test_parentheses_make_expression_complex(self, parser):
        """Test that grouping raises complexity."""
        parsed = parser.parse("(15 - 3) / 2")

        assert parsed.is_valid is True
        assert parsed.normalized_expression == "(15 - 3) / 2"
        assert parsed.complexity == ExpressionComplexity.COMPLEX

    def test_unary_minus_folds_into_operand(self, parser):
        """Test that a leading minus is part of the numeral, not an operator."""
        parsed = parser.parse("-5 + 3")

        assert parsed.is_valid is True
        assert parsed.normalized_expression == "-5 + 3"
        assert parsed.operands == (-5, 3)
        assert parsed.operators == ("+",)

    def test_negative_operand_after_operator(self, parser):
        """Test a negative number following a binary operator."""
        parsed = parser.parse("3 * -2")

        assert parsed.is_valid is True
        assert parsed.normalized_expression == "3 * -2"
        assert parsed.operands == (3, -2)
        assert parser.evaluate(parsed.normalized_expression).result == -6

    def test_empty_input(self, parser):
        """Test empty and non-string input."""
        assert parser.parse("").error == "No expression provided"
        assert parser.parse("   ").error == "No expression provided"
        assert parser.parse(None).is_valid is False

    def test_no_expression_sentinel(self, parser):
        """Test the marker the inference service returns for images without math."""
        parsed = parser.parse(NO_EXPRESSION_SENTINEL)

        assert parsed.is_valid is False
        assert parsed.error == "No mathematical expression found in image"

    @pytest.mark.parametrize("raw,error", [
        ("2 + + 3", "Consecutive operators are not allowed"),
        ("(2 + 3", "Parentheses are not balanced"),
        ("5 / 0", "Division by zero is not allowed"),
        ("2 3", "Missing operator between operands"),
        ("* 2", "Invalid operator placement. Operators cannot be at the start or end of expression"),
        ("1.2.3 + 4", "Invalid number format. Check decimal points"),
        ("2 + 3a", "Expression contains invalid characters. Use only numbers and +, -, *, /, (, )"),
    ])
    def test_invalid_expressions(self, parser, raw, error):
        """Test that malformed expressions report the first failed check."""
        parsed = parser.parse(raw)

        assert parsed.is_valid is False
        assert parsed.error == error

    def test_parse_does_not_evaluate(self, parser):
        """Test that parsing accepts expressions without computing them."""
        parsed = parser.parse("1 / 3")

        assert parsed.is_valid is True
        assert parsed.operands == (1, 3)


class TestNormalize:
    """Test expression normalization."""

    @pytest.mark.parametrize("raw,expected", [
        ("2+3*4", "2 + 3 * 4"),
        ("5 × 3", "5 * 3"),
        ("10 ÷ 2", "10 / 2"),
        ("7 − 1", "7 - 1"),
        ("2(3 + 4)", "2 * (3 + 4)"),
        ('"8 / 4"', "8 / 4"),
        ("( 1 + 2 )", "(1 + 2)"),
    ])
    def test_canonical_form(self, parser, raw, expected):
        """Test operator glyphs, spacing and implicit multiplication."""
        assert parser.normalize(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("Expression: 2 + 3", "2 + 3"),
        ("The expression is: 2+3", "2 + 3"),
        ("The answer is 7 + 8.", "7 + 8"),
        ("2 + 3 = 5", "2 + 3"),
        ("Calculate 6 * 7", "6 * 7"),
        ("4 - 1 where x is unknown", "4 - 1"),
    ])
    def test_strips_surrounding_prose(self, parser, raw, expected):
        """Test removal of explanatory text around the expression."""
        assert parser.normalize(raw) == expected

    def test_decimal_point_is_not_punctuation(self, parser):
        """Test that a period before a digit is kept."""
        assert parser.normalize("3.5 + 1.25") == "3.5 + 1.25"

    @pytest.mark.parametrize("raw", [
        "2+3*4",
        "Expression: (15-3)/2",
        "2(3+4)",
        "-5 + 3",
        "3*-2",
        "result: 1 ÷ 4 = 0.25",
    ])
    def test_idempotent(self, parser, raw):
        """Test that normalizing twice equals normalizing once."""
        once = parser.normalize(raw)
        assert parser.normalize(once) == once

    def test_non_string_normalizes_to_empty(self, parser):
        """Test normalization of non-string input."""
        assert parser.normalize(None) == ""


class TestSyntaxValidation:
    """Test the syntax checks."""

    @pytest.mark.parametrize("expression", [")(", "(()", "())(", "(1 + 2))"])
    def test_unbalanced_parentheses(self, parser, expression):
        """Test that any negative running depth is rejected."""
        assert parser.has_balanced_parentheses(expression) is False

    def test_balanced_parentheses(self, parser):
        """Test nested balanced parentheses."""
        assert parser.has_balanced_parentheses("((1 + 2) * (3 - 4))") is True

    def test_empty_parentheses(self, parser):
        """Test that empty groups are rejected."""
        ok, error = parser.validate_syntax_detailed("2 + ()")
        assert ok is False

    def test_valid_expression(self, parser):
        """Test that a valid expression has no error."""
        assert parser.validate_syntax_detailed("(1 + 2) * 3") == (True, None)

    def test_non_string(self, parser):
        """Test validation of non-string input."""
        assert parser.validate_syntax_detailed(42) == (False, "Expression must be a non-empty string")


class TestEvaluate:
    """Test evaluation through the parser and the safe evaluator."""

    def test_precedence(self, parser):
        """Test operator precedence."""
        assert parser.evaluate("2 + 3 * 4").result == 14

    def test_parentheses(self, parser):
        """Test grouped evaluation."""
        assert parser.evaluate("(15 - 3) / 2").result == 6

    def test_division_by_zero_literal(self, parser):
        """Test division by a literal zero."""
        evaluation = parser.evaluate("5 / 0")

        assert evaluation.is_valid is False
        assert evaluation.error == "Division by zero is not allowed"

    def test_division_by_zero_subexpression(self, parser):
        """Test division by an expression that evaluates to zero."""
        evaluation = parser.evaluate("1 / (2 - 2)")

        assert evaluation.is_valid is False
        assert evaluation.error == "Division by zero is not allowed"

    def test_deterministic_and_finite(self, parser):
        """Test that repeated evaluation gives the same finite value."""
        first = parser.evaluate("1 / 3 + 2.5 * (4 - 1)")
        second = parser.evaluate("1 / 3 + 2.5 * (4 - 1)")

        assert first.is_valid is True
        assert math.isfinite(first.result)
        assert first.result == second.result

    def test_invalid_expression_is_not_evaluated(self, parser):
        """Test that evaluation re-validates its input."""
        evaluation = parser.evaluate("2 +")

        assert evaluation.is_valid is False
        assert evaluation.result is None


class TestSafeEvaluator:
    """Test the AST evaluator directly."""

    def test_rejects_names(self):
        """Test that identifiers never reach evaluation."""
        evaluation = SafeEvaluator().evaluate("__import__('os')")

        assert evaluation.is_valid is False
        assert evaluation.error == "Invalid characters in expression"

    def test_rejects_power(self):
        """Test that operators outside the grammar are rejected."""
        evaluation = SafeEvaluator().evaluate("2 ** 3")

        assert evaluation.is_valid is False

    def test_leading_zero_numerals(self):
        """Test numerals that are not valid Python literals."""
        assert SafeEvaluator().evaluate("007 + 1").result == 8

    def test_malformed_decimal(self):
        """Test a numeral with two decimal points."""
        evaluation = SafeEvaluator().evaluate("1.2.3")

        assert evaluation.is_valid is False
        assert evaluation.error == "Failed to evaluate expression"

    def test_overflow(self):
        """Test that a non-finite result is rejected."""
        evaluation = SafeEvaluator().evaluate("1" + "0" * 400 + ".0 * 10.0")

        assert evaluation.is_valid is False
        assert evaluation.error == "Invalid calculation result"


class TestSuggestions:
    """Test correction hints."""

    def test_empty(self, parser):
        """Test hints for empty input."""
        assert parser.get_suggestions("") == ["Enter a mathematical expression"]

    def test_unbalanced(self, parser):
        """Test hints for unbalanced parentheses."""
        assert "Check parentheses - make sure they are balanced" in parser.get_suggestions("(2 + 3")

    def test_letters(self, parser):
        """Test hints for stray letters."""
        suggestions = parser.get_suggestions("2 + x")
        assert "Remove letters and symbols - use only numbers and +, -, *, /, (, )" in suggestions

    def test_consecutive_operators(self, parser):
        """Test hints for doubled operators."""
        assert "Remove consecutive operators" in parser.get_suggestions("2 * / 3")

    def test_valid(self, parser):
        """Test that a valid expression gets a positive hint."""
        assert parser.get_suggestions("2 + 2") == ["Expression looks good!"]


class TestHelpers:
    """Test module-level helpers."""

    def test_format_for_display(self):
        """Test typographic operator rendering."""
        assert format_for_display("6 * 2 / 3") == "6 × 2 ÷ 3"

    def test_looks_like_math(self):
        """Test the free-text arithmetic heuristic."""
        assert looks_like_math("the total was 12 + 30") is True
        assert looks_like_math("no numbers here") is False

    def test_tokenize(self):
        """Test token kinds."""
        kinds = [token.kind for token in tokenize("(1 + x)")]
        assert kinds == ["lparen", "number", "operator", "other", "rparen"]
