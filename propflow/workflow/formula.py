"""
Formula language for derived workstream fields.

Spreadsheet-like expressions over other fields:

    gross_rental_income - operating_expenses
    net_operating_income / (cap_rate / 100)
    IF(ABS(variance_percentage) < 5, 95, IF(ABS(variance_percentage) < 10, 85, 70))
    valuer_assignment.assignment_date + 30

Expressions are parsed with the Python AST and then restricted to references
(bare or qualified by workstream key), numeric and string literals, + - * /,
unary signs, comparisons, and/or/not inside conditions, and the functions
IF, ABS, SUM and AVG.
"""

import ast
import io
import logging
import math
import tokenize
from dataclasses import dataclass
from datetime import date
from functools import lru_cache
from typing import Any, Callable, List, Optional, Tuple

from ..values.number import as_float
from .errors import FormulaSyntaxError

logger = logging.getLogger(__name__)

Resolver = Callable[[str], Any]

_FUNCTION_ARITY = {
    "IF": (3, 3),
    "ABS": (1, 1),
    "SUM": (1, None),
    "AVG": (1, None),
}


@dataclass(frozen=True)
class Formula:
    expression: str
    tree: ast.Expression
    references: Tuple[str, ...]


def parse_formula(expression: str) -> Formula:
    """
    Parse and validate an expression. Raises FormulaSyntaxError on anything
    outside the formula language.
    """
    return _parse(expression.strip() if isinstance(expression, str) else expression)


@lru_cache(maxsize=512)
def _parse(expression: str) -> Formula:
    if not isinstance(expression, str) or not expression:
        raise FormulaSyntaxError("Formula is empty", expression=expression)

    source = _normalise_if(expression)
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as e:
        raise FormulaSyntaxError(f"Syntax error in '{expression}': {e.msg}", expression=expression)

    references: List[str] = []
    _validate(tree.body, expression, references, in_condition=False)
    return Formula(expression=expression, tree=tree, references=tuple(dict.fromkeys(references)))


def _normalise_if(expression: str) -> str:
    """
    "if" is a Python keyword, so lower-case `if(` calls are upper-cased before
    parsing. Works on tokens, so string literals are left alone.
    """
    try:
        tokens = list(tokenize.generate_tokens(io.StringIO(expression).readline))
    except (tokenize.TokenError, SyntaxError):
        # ast.parse reports the real error
        return expression

    lines = expression.splitlines(keepends=True)
    chars = list(expression)
    for token, following in zip(tokens, tokens[1:]):
        if token.type == tokenize.NAME and token.string == "if" and following.string == "(":
            row, col = token.start
            offset = sum(len(line) for line in lines[:row - 1]) + col
            chars[offset:offset + 2] = "IF"
    return "".join(chars)


def extract_references(expression: str) -> List[str]:
    """ Field references in order of first appearance, without duplicates. """
    return list(parse_formula(expression).references)


def _reference_name(node: ast.AST) -> Optional[str]:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
        return f"{node.value.id}.{node.attr}"
    return None


def _function_name(node: ast.Call) -> Optional[str]:
    if isinstance(node.func, ast.Name):
        return node.func.id.upper()
    return None


def _validate(node: ast.AST, expression: str, references: List[str], in_condition: bool) -> None:
    def fail(message: str):
        raise FormulaSyntaxError(f"{message} in '{expression}'", expression=expression)

    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float, str)):
            fail(f"Unsupported literal {node.value!r}")
        return

    reference = _reference_name(node)
    if reference is not None:
        references.append(reference)
        return

    if isinstance(node, ast.Attribute):
        fail("Only one level of workstream qualification is allowed")

    if isinstance(node, ast.BinOp):
        if not isinstance(node.op, (ast.Add, ast.Sub, ast.Mult, ast.Div)):
            fail(f"Unsupported operator {type(node.op).__name__}")
        _validate(node.left, expression, references, in_condition)
        _validate(node.right, expression, references, in_condition)
        return

    if isinstance(node, ast.UnaryOp):
        if isinstance(node.op, ast.Not) and not in_condition:
            fail("'not' is only allowed inside an IF condition")
        if not isinstance(node.op, (ast.UAdd, ast.USub, ast.Not)):
            fail(f"Unsupported operator {type(node.op).__name__}")
        _validate(node.operand, expression, references, in_condition)
        return

    if isinstance(node, (ast.Compare, ast.BoolOp)):
        if not in_condition:
            fail("Comparisons are only allowed inside an IF condition")
        if isinstance(node, ast.BoolOp):
            for value in node.values:
                _validate(value, expression, references, in_condition)
            return
        for op in node.ops:
            if not isinstance(op, (ast.Eq, ast.NotEq, ast.Lt, ast.LtE, ast.Gt, ast.GtE)):
                fail(f"Unsupported comparison {type(op).__name__}")
        _validate(node.left, expression, references, in_condition)
        for comparator in node.comparators:
            _validate(comparator, expression, references, in_condition)
        return

    if isinstance(node, ast.Call):
        name = _function_name(node)
        if name not in _FUNCTION_ARITY:
            fail(f"Unknown function {name or ast.dump(node.func)}")
        if node.keywords:
            fail(f"{name} does not take keyword arguments")
        low, high = _FUNCTION_ARITY[name]
        if len(node.args) < low or (high is not None and len(node.args) > high):
            fail(f"Wrong number of arguments to {name}")
        for i, arg in enumerate(node.args):
            _validate(arg, expression, references, in_condition=(name == "IF" and i == 0))
        return

    fail(f"Unsupported expression {type(node).__name__}")


def to_number(value: Any) -> float:
    """
    Numeric view of a resolved value, always a double. Missing values count as 0,
    dates as their day ordinal, booleans as 1/0. Text that is not a number counts as 0.
    """
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return as_float(value)
    if isinstance(value, date):
        return float(value.toordinal())
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            logger.warning("Non-numeric value %r used in arithmetic, treated as 0", value)
            return 0.0
    logger.warning("Unsupported value %r used in arithmetic, treated as 0", value)
    return 0.0


def divide(left: float, right: float) -> float:
    """ Division where x/0 gives a signed infinity (NaN for 0/0) instead of raising. """
    if right == 0:
        if left > 0:
            return math.inf
        if left < 0:
            return -math.inf
        return math.nan
    return left / right


def _compare(op: ast.cmpop, left: Any, right: Any) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        a, b = left, right
    elif isinstance(op, (ast.Eq, ast.NotEq)) and (isinstance(left, str) or isinstance(right, str)):
        # Mixed text/number equality: equal only if the text is that number
        try:
            a, b = float(left), float(right)
        except (TypeError, ValueError, OverflowError):
            a, b = left, right
    else:
        a, b = to_number(left), to_number(right)

    if isinstance(op, ast.Eq):      return a == b
    elif isinstance(op, ast.NotEq): return a != b
    elif isinstance(op, ast.Lt):    return a < b
    elif isinstance(op, ast.LtE):   return a <= b
    elif isinstance(op, ast.Gt):    return a > b
    elif isinstance(op, ast.GtE):   return a >= b
    raise FormulaSyntaxError(f"Unsupported comparison {type(op).__name__}")


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip() != ""
    number = to_number(value)
    return not (number == 0 or (isinstance(number, float) and math.isnan(number)))


def evaluate(expression: str, resolver: Resolver) -> Any:
    """
    Evaluate a formula. `resolver(reference)` returns the current value of a
    field, or None when it has no value. Returns a number, or a string when an
    IF branch yields text.
    """
    formula = parse_formula(expression)

    def _eval(node: ast.AST) -> Any:
        if isinstance(node, ast.Constant):
            return node.value

        reference = _reference_name(node)
        if reference is not None:
            return resolver(reference)

        if isinstance(node, ast.BinOp):
            left = to_number(_eval(node.left))
            right = to_number(_eval(node.right))
            if isinstance(node.op, ast.Add):    return left + right
            if isinstance(node.op, ast.Sub):    return left - right
            if isinstance(node.op, ast.Mult):   return left * right
            return divide(left, right)

        if isinstance(node, ast.UnaryOp):
            if isinstance(node.op, ast.Not):
                return not _truthy(_eval(node.operand))
            operand = to_number(_eval(node.operand))
            return -operand if isinstance(node.op, ast.USub) else operand

        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                return all(_truthy(_eval(v)) for v in node.values)
            return any(_truthy(_eval(v)) for v in node.values)

        if isinstance(node, ast.Compare):
            left = _eval(node.left)
            for op, comparator in zip(node.ops, node.comparators):
                right = _eval(comparator)
                if not _compare(op, left, right):
                    return False
                left = right
            return True

        if isinstance(node, ast.Call):
            name = _function_name(node)
            if name == "IF":
                condition, when_true, when_false = node.args
                return _eval(when_true) if _truthy(_eval(condition)) else _eval(when_false)
            args = [to_number(_eval(arg)) for arg in node.args]
            if name == "ABS":
                return abs(args[0])
            if name == "SUM":
                return sum(args)
            return divide(sum(args), len(args))

        raise FormulaSyntaxError(f"Unsupported expression {type(node).__name__}")

    result = _eval(formula.tree.body)
    if result is None:
        return 0.0
    if isinstance(result, (int, float)):
        return as_float(result)
    return result
