"""Sandboxed formula language used by calculated columns and webhook transforms."""

from app.formula.evaluator import FormulaEvaluator, evaluate, evaluate_formula
from app.formula.functions import FUNCTIONS, FormulaFunction, describe_functions, get_function
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
from app.formula.validator import ValidationResult, check_functions, validate

__all__ = [
    "BinaryOp",
    "Conditional",
    "FUNCTIONS",
    "FormulaEvaluator",
    "FormulaFunction",
    "FunctionCall",
    "Identifier",
    "Literal",
    "Node",
    "UnaryOp",
    "ValidationResult",
    "check_functions",
    "describe_functions",
    "evaluate",
    "evaluate_formula",
    "get_function",
    "parse",
    "validate",
]
