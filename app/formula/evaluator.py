"""Tree-walking evaluator for parsed formulas.

Evaluation is synchronous and side-effect free: neither the tree nor the
context is mutated, so a parsed formula can be evaluated for many leads.
"""

import math
from collections.abc import Mapping as MappingABC
from typing import Any, Callable, Dict, Mapping, Optional

from app.core.exceptions import (
    EvaluationError,
    FormulaTypeError,
    UnknownFunctionError,
)
from app.formula.coercion import (
    describe,
    is_truthy,
    loose_equals,
    normalize_number,
    to_number,
)
from app.formula.functions import FUNCTIONS, FormulaFunction
from app.formula.nodes import (
    BinaryOp,
    Conditional,
    FunctionCall,
    Identifier,
    Literal,
    Node,
    UnaryOp,
)
from app.formula.parser import parse

_MISSING = object()


class FormulaEvaluator:
    """Evaluate syntax trees against a per-lead data context."""

    def __init__(self, functions: Mapping[str, FormulaFunction] = FUNCTIONS) -> None:
        self._functions = functions
        self._handlers: Dict[type, Callable[[Any, Mapping[str, Any]], Any]] = {
            Literal: self._literal,
            Identifier: self._identifier,
            BinaryOp: self._binary,
            UnaryOp: self._unary,
            FunctionCall: self._call,
            Conditional: self._conditional,
        }

    def evaluate(self, node: Node, context: Optional[Mapping[str, Any]] = None) -> Any:
        return self._eval(node, context or {})

    def _eval(self, node: Node, context: Mapping[str, Any]) -> Any:
        handler = self._handlers.get(type(node))
        if handler is None:
            raise EvaluationError(f"Unsupported node {type(node).__name__}")
        return handler(node, context)

    # -- leaves --------------------------------------------------------

    def _literal(self, node: Literal, context: Mapping[str, Any]) -> Any:
        return node.value

    def _identifier(self, node: Identifier, context: Mapping[str, Any]) -> Any:
        """Resolve a field reference; unresolved paths yield ``None``.

        An exact key match wins (``[First Name]``, flattened ``a.b`` keys).
        A leading ``lead`` segment falls back to the context root when the
        context carries the lead's fields directly.
        """
        if node.name in context:
            return context[node.name]
        path = node.path
        if path[0] == "lead" and "lead" not in context and len(path) > 1:
            path = path[1:]
        current: Any = context
        for segment in path:
            if not isinstance(current, MappingABC):
                return None
            current = current.get(segment, _MISSING)
            if current is _MISSING:
                return None
        return current

    # -- operators -----------------------------------------------------

    def _binary(self, node: BinaryOp, context: Mapping[str, Any]) -> Any:
        op = node.op
        if op == "&&":
            if not is_truthy(self._eval(node.left, context)):
                return False
            return is_truthy(self._eval(node.right, context))
        if op == "||":
            if is_truthy(self._eval(node.left, context)):
                return True
            return is_truthy(self._eval(node.right, context))

        left = self._eval(node.left, context)
        right = self._eval(node.right, context)

        if op == "==":
            return loose_equals(left, right)
        if op == "!=":
            return not loose_equals(left, right)
        if op in ("<", "<=", ">", ">="):
            return _compare(op, left, right)
        return _arithmetic(op, left, right)

    def _unary(self, node: UnaryOp, context: Mapping[str, Any]) -> Any:
        value = self._eval(node.operand, context)
        if node.op == "!":
            return not is_truthy(value)
        number = _operand(node.op, value)
        return normalize_number(-number if node.op == "-" else number)

    def _conditional(self, node: Conditional, context: Mapping[str, Any]) -> Any:
        if is_truthy(self._eval(node.condition, context)):
            return self._eval(node.then_branch, context)
        return self._eval(node.else_branch, context)

    def _call(self, node: FunctionCall, context: Mapping[str, Any]) -> Any:
        fn = self._functions.get(node.name.lower())
        if fn is None:
            raise UnknownFunctionError(node.name)
        fn.check_arity(len(node.args))
        args = [self._eval(arg, context) for arg in node.args]
        try:
            return fn.impl(*args)
        except (ArithmeticError, ValueError, TypeError) as exc:
            raise EvaluationError(f"{fn.name}() failed: {exc}") from exc


def _operand(op: str, value: Any):
    number = to_number(value)
    if number is None:
        raise FormulaTypeError(f"Operator '{op}' cannot be applied to {describe(value)}")
    return number


def _arithmetic(op: str, left: Any, right: Any) -> Any:
    a, b = _operand(op, left), _operand(op, right)
    if op == "/" and b == 0:
        raise EvaluationError("Division by zero")
    try:
        if op == "+":
            result = a + b
        elif op == "-":
            result = a - b
        elif op == "*":
            result = a * b
        elif op == "/":
            result = a / b
        else:
            raise EvaluationError(f"Unsupported operator '{op}'")
    except OverflowError as exc:
        raise EvaluationError(f"Numeric overflow in '{op}'") from exc
    if isinstance(result, float) and not math.isfinite(result):
        raise EvaluationError(f"Numeric overflow in '{op}'")
    return normalize_number(result)


def _compare(op: str, left: Any, right: Any) -> bool:
    if left is None or right is None:
        return False
    if isinstance(left, str) and isinstance(right, str):
        a, b = left, right
        left_number, right_number = to_number(left), to_number(right)
        if left_number is not None and right_number is not None:
            a, b = left_number, right_number
    else:
        a, b = to_number(left), to_number(right)
        if a is None or b is None:
            raise FormulaTypeError(
                f"Cannot compare {describe(left)} and {describe(right)} with '{op}'"
            )
    if op == "<":
        return a < b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    return a >= b


_default_evaluator = FormulaEvaluator()


def evaluate(node: Node, context: Optional[Mapping[str, Any]] = None) -> Any:
    """Evaluate *node* with the built-in function catalogue."""
    return _default_evaluator.evaluate(node, context)


def evaluate_formula(source: str, context: Optional[Mapping[str, Any]] = None) -> Any:
    """Parse and evaluate *source* in one step."""
    return _default_evaluator.evaluate(parse(source), context)
