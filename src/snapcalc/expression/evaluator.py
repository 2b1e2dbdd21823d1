"""Safe arithmetic evaluation over a whitelisted AST."""
import ast
import logging
import math
import operator
import re

from ..types import Evaluation

logger = logging.getLogger(__name__)

ALLOWED_CHARS = re.compile(r"^[\d+\-*/().\s]+$")

_NUMERAL = re.compile(r"[\d.]+")

BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}

UNARY_OPERATORS = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}


class SafeEvaluator:
    """Evaluates flat arithmetic without ``eval``.

    Only numeric constants, ``+ - * /`` and unary signs are accepted; any
    other node in the parsed tree is rejected.
    """

    def evaluate(self, expression: str) -> Evaluation:
        if not isinstance(expression, str) or not ALLOWED_CHARS.match(expression):
            return Evaluation(is_valid=False, error="Invalid characters in expression")

        # numerals like "007" are not valid Python literals
        try:
            source = _NUMERAL.sub(lambda m: repr(_literal(m.group())), expression.strip())
            tree = ast.parse(source, mode="eval")
        except OverflowError:
            return Evaluation(is_valid=False, error="Invalid calculation result")
        except (SyntaxError, ValueError):
            return Evaluation(is_valid=False, error="Failed to evaluate expression")

        try:
            result = self._eval_node(tree)
        except ZeroDivisionError:
            return Evaluation(is_valid=False, error="Division by zero is not allowed")
        except OverflowError:
            return Evaluation(is_valid=False, error="Invalid calculation result")
        except ValueError as e:
            return Evaluation(is_valid=False, error=str(e))

        try:
            finite = math.isfinite(result)
        except OverflowError:
            finite = False
        if not finite:
            return Evaluation(is_valid=False, error="Invalid calculation result")

        logger.debug(f"Evaluated {expression!r} -> {result}")
        return Evaluation(is_valid=True, result=result)

    def _eval_node(self, node):
        if isinstance(node, ast.Expression):
            return self._eval_node(node.body)
        if isinstance(node, ast.BinOp):
            op_func = BINARY_OPERATORS.get(type(node.op))
            if op_func is None:
                raise ValueError(f"Unsupported operator: {type(node.op).__name__}")
            return op_func(self._eval_node(node.left), self._eval_node(node.right))
        if isinstance(node, ast.UnaryOp):
            op_func = UNARY_OPERATORS.get(type(node.op))
            if op_func is None:
                raise ValueError(f"Unsupported unary operator: {type(node.op).__name__}")
            return op_func(self._eval_node(node.operand))
        if isinstance(node, ast.Constant) and type(node.value) in (int, float):
            return node.value
        raise ValueError(f"Unsupported expression element: {type(node).__name__}")


def _literal(text: str) -> int | float:
    if "." in text:
        try:
            value = float(text)
        except ValueError:
            raise ValueError("Invalid number format. Check decimal points") from None
        if math.isinf(value):
            raise OverflowError(f"Numeral out of range: {text[:20]}...")
        return value
    return int(text)
