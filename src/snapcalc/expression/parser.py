"""Parsing, normalization and syntax validation of recognized expressions."""
import logging
import re
from dataclasses import dataclass

from ..types import Evaluation, ExpressionComplexity, ParsedExpression
from .evaluator import SafeEvaluator

logger = logging.getLogger(__name__)

# Marker returned by the inference service when the image holds no math
NO_EXPRESSION_SENTINEL = "NO_MATH_FOUND"

OPERATORS = ("+", "-", "*", "/")

GLYPHS = {
    "×": "*",
    "·": "*",
    "÷": "/",
    "−": "-",
    "–": "-",
}

_QUOTES = re.compile(r"[\"'`“”‘’]")

# Prefix patterns only consume leading text that holds no digits or operators
PREFIX_PATTERNS = (
    re.compile(
        r"^[^\d()+\-*/=]*?\b(?:expression|equation|calculation|answer|result)\s*(?::|\bis\b\s*:?)\s*",
        re.IGNORECASE,
    ),
    re.compile(r"^[^\d()+\-*/=]*?\b(?:calculate|solve|compute|evaluate)\b\s*:?\s*", re.IGNORECASE),
    re.compile(r"^[^\d()+\-*/=]*?(?:\bequals?\b|\bis\b|=)\s*", re.IGNORECASE),
)

SUFFIX_PATTERNS = (
    re.compile(r"\s*(?:=|\bequals?\b|\bis\b).*$", re.IGNORECASE | re.DOTALL),
    re.compile(r"\s*\b(?:where|when|if)\b.*$", re.IGNORECASE | re.DOTALL),
    # a period followed by a digit is a decimal point, not punctuation
    re.compile(r"\s*(?:[!?;]|\.(?!\d)).*$", re.DOTALL),
)

_VALID_CHARS = re.compile(r"^[\d+\-*/().\s]+$")

_TOKEN_RE = re.compile(
    r"(?P<number>[\d.]+)|(?P<operator>[+\-*/])|(?P<lparen>\()|(?P<rparen>\))|(?P<other>[^\s\d.+\-*/()]+)"
)

_MAX_NORMALIZE_PASSES = 10


@dataclass(frozen=True)
class Token:
    kind: str  # number, operator, lparen, rparen, other
    text: str


def tokenize(expression: str) -> list[Token]:
    """Split an expression into numerals, operators, parentheses and stray words."""
    return [Token(m.lastgroup, m.group()) for m in _TOKEN_RE.finditer(expression)]


def _is_unary(tokens: list[Token], index: int) -> bool:
    if tokens[index].text != "-":
        return False
    if index == 0:
        return True
    return tokens[index - 1].kind in ("operator", "lparen")


def _numeral_value(text: str) -> int | float:
    return float(text) if "." in text else int(text)


class MathExpressionParser:
    """Parses raw inference output into a validated arithmetic expression.

    The accepted grammar is flat arithmetic: decimal numerals, the four
    binary operators, unary minus and parentheses.
    """

    def parse(self, raw) -> ParsedExpression:
        """Parse a raw expression string.

        Args:
            raw: Text returned by the inference service

        Returns:
            ParsedExpression; ``is_valid`` is False with ``error`` set when
            the input is empty, the no-expression marker, or malformed.

        """
        if not isinstance(raw, str) or not raw.strip():
            return ParsedExpression(is_valid=False, normalized_expression="", error="No expression provided")

        if NO_EXPRESSION_SENTINEL in raw.upper():
            return ParsedExpression(
                is_valid=False,
                normalized_expression=raw,
                error="No mathematical expression found in image",
            )

        normalized = self.normalize(raw)
        if not normalized:
            return ParsedExpression(
                is_valid=False,
                normalized_expression="",
                error="No mathematical content found",
            )

        ok, error = self.validate_syntax_detailed(normalized)
        if not ok:
            logger.debug(f"Rejected expression {normalized!r}: {error}")
            return ParsedExpression(is_valid=False, normalized_expression=normalized, error=error)

        operands, operators = self.extract_components(normalized)
        if not operands:
            return ParsedExpression(
                is_valid=False,
                normalized_expression=normalized,
                error="No mathematical content found",
            )

        return ParsedExpression(
            is_valid=True,
            normalized_expression=normalized,
            operands=tuple(operands),
            operators=tuple(operators),
            complexity=self.determine_complexity(normalized, operands, operators),
        )

    def normalize(self, expression) -> str:
        """Canonicalize an expression; applying it twice changes nothing."""
        if not isinstance(expression, str):
            return ""

        current = expression
        for _ in range(_MAX_NORMALIZE_PASSES):
            following = self._normalize_once(current)
            if following == current:
                return following
            current = following
        return current

    def _normalize_once(self, expression: str) -> str:
        text = expression.strip()
        for glyph, replacement in GLYPHS.items():
            text = text.replace(glyph, replacement)
        text = _QUOTES.sub("", text)
        text = self._strip_prose(text)
        return self._render(tokenize(text))

    def _strip_prose(self, text: str) -> str:
        while True:
            trimmed = text
            for pattern in PREFIX_PATTERNS:
                trimmed = pattern.sub("", trimmed, count=1)
            for pattern in SUFFIX_PATTERNS:
                trimmed = pattern.sub("", trimmed, count=1)
            trimmed = trimmed.strip()
            if trimmed == text:
                return trimmed
            text = trimmed

    def _render(self, tokens: list[Token]) -> str:
        # implicit multiplication between a numeral and an opening parenthesis
        expanded: list[Token] = []
        for token in tokens:
            if token.kind == "lparen" and expanded and expanded[-1].kind == "number":
                expanded.append(Token("operator", "*"))
            expanded.append(token)

        out = ""
        glue = False  # no space before the next token
        for index, token in enumerate(expanded):
            if out and not glue and token.kind != "rparen":
                out += " "
            out += token.text
            glue = token.kind == "lparen" or _is_unary(expanded, index)
        return out

    def validate_syntax(self, expression) -> bool:
        return self.validate_syntax_detailed(expression)[0]

    def validate_syntax_detailed(self, expression) -> tuple[bool, str | None]:
        """Check an expression against the arithmetic grammar.

        Returns:
            Tuple of (is_valid, error message or None)

        """
        if not isinstance(expression, str):
            return False, "Expression must be a non-empty string"
        if not expression.strip():
            return False, "Expression cannot be empty"
        if not _VALID_CHARS.match(expression):
            return False, "Expression contains invalid characters. Use only numbers and +, -, *, /, (, )"
        if not self.has_balanced_parentheses(expression):
            return False, "Parentheses are not balanced"

        tokens = tokenize(expression)

        if not self._has_valid_operator_placement(tokens):
            return False, "Invalid operator placement. Operators cannot be at the start or end of expression"

        for token in tokens:
            if token.kind == "number" and (token.text.count(".") > 1 or not any(c.isdigit() for c in token.text)):
                return False, "Invalid number format. Check decimal points"

        for previous, current in zip(tokens, tokens[1:]):
            if previous.kind == "operator" and current.kind == "operator" and current.text != "-":
                return False, "Consecutive operators are not allowed"
            if previous.kind == "lparen" and current.kind == "rparen":
                return False, "Empty parentheses are not allowed"
            if previous.kind in ("number", "rparen") and current.kind in ("number", "lparen"):
                return False, "Missing operator between operands"

        for index, token in enumerate(tokens):
            if token.text != "/":
                continue
            following = index + 1
            while following < len(tokens) and tokens[following].text == "-":
                following += 1
            if (
                following < len(tokens)
                and tokens[following].kind == "number"
                and float(tokens[following].text) == 0
            ):
                return False, "Division by zero is not allowed"

        return True, None

    @staticmethod
    def has_balanced_parentheses(expression: str) -> bool:
        depth = 0
        for char in expression:
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth < 0:
                    return False
        return depth == 0

    @staticmethod
    def _has_valid_operator_placement(tokens: list[Token]) -> bool:
        if not tokens:
            return False
        first, last = tokens[0], tokens[-1]
        if first.kind == "operator" and first.text != "-":
            return False
        if last.kind == "operator":
            return False
        for previous, current in zip(tokens, tokens[1:]):
            if previous.kind == "lparen" and current.kind == "operator" and current.text != "-":
                return False
            if previous.kind == "operator" and current.kind == "rparen":
                return False
        return True

    def extract_components(self, expression: str) -> tuple[list[int | float], list[str]]:
        """Pull operands and binary operators out of a validated expression.

        A unary minus folds into the sign of the numeral it precedes and is
        not listed as an operator.
        """
        tokens = tokenize(expression)
        operands: list[int | float] = []
        operators: list[str] = []
        negate = False

        for index, token in enumerate(tokens):
            if token.kind == "operator":
                if _is_unary(tokens, index):
                    negate = not negate
                else:
                    operators.append(token.text)
            elif token.kind == "number":
                value = _numeral_value(token.text)
                operands.append(-value if negate else value)
                negate = False
            elif token.kind == "lparen":
                negate = False

        return operands, operators

    @staticmethod
    def determine_complexity(
        expression: str,
        operands: list[int | float],
        operators: list[str],
    ) -> ExpressionComplexity:
        if len(operators) <= 1 and len(operands) <= 2:
            return ExpressionComplexity.SIMPLE
        if "(" in expression or len(operators) > 3 or len(operands) > 4:
            return ExpressionComplexity.COMPLEX
        return ExpressionComplexity.MODERATE

    def evaluate(self, expression) -> Evaluation:
        """Re-validate and evaluate an expression with the safe evaluator."""
        normalized = self.normalize(expression)
        ok, error = self.validate_syntax_detailed(normalized)
        if not ok:
            return Evaluation(is_valid=False, error=error)
        return SafeEvaluator().evaluate(normalized)

    def get_suggestions(self, expression) -> list[str]:
        """Targeted correction hints for a malformed expression."""
        if not isinstance(expression, str) or not expression:
            return ["Enter a mathematical expression"]
        if not expression.strip():
            return ["Expression cannot be empty"]

        suggestions: list[str] = []
        tokens = tokenize(expression)

        if not self.has_balanced_parentheses(expression):
            suggestions.append("Check parentheses - make sure they are balanced")
        if not _VALID_CHARS.match(expression):
            suggestions.append("Remove letters and symbols - use only numbers and +, -, *, /, (, )")
        if not self._has_valid_operator_placement(tokens):
            suggestions.append("Use only +, -, *, / operators between numbers, not at the start or end")
        if any(
            previous.kind == "operator" and current.kind == "operator" and current.text != "-"
            for previous, current in zip(tokens, tokens[1:])
        ):
            suggestions.append("Remove consecutive operators")
        if any(
            token.kind == "number" and (token.text.count(".") > 1 or not any(c.isdigit() for c in token.text))
            for token in tokens
        ):
            suggestions.append("Check number format - use decimal points correctly")

        if not suggestions:
            ok, error = self.validate_syntax_detailed(expression)
            if not ok:
                suggestions.append(f"Check expression syntax: {error}")

        return suggestions or ["Expression looks good!"]


def format_for_display(expression: str) -> str:
    """Render canonical operators with typographic glyphs."""
    return re.sub(r"\s+", " ", expression.replace("*", "×").replace("/", "÷")).strip()


_MATH_HINTS = (
    re.compile(r"\d+\s*[+\-*/×÷]\s*\d+"),
    re.compile(r"\d+\s*\(\s*\d+"),
    re.compile(r"\(\s*\d+.*\d+\s*\)"),
    re.compile(r"\d+\.\d+"),
)


def looks_like_math(text: str) -> bool:
    """Quick heuristic for whether free text probably contains arithmetic."""
    return any(pattern.search(text) for pattern in _MATH_HINTS)
