from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from app.core.exceptions import FormulaError, UnknownFunctionError
from app.formula.functions import FUNCTIONS, FormulaFunction
from app.formula.nodes import FunctionCall, Node, walk
from app.formula.parser import parse


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {"valid": self.valid}
        if self.error is not None:
            data["error"] = self.error
        return data


def check_functions(
    node: Node, functions: Mapping[str, FormulaFunction] = FUNCTIONS
) -> None:
    """Raise if any call in *node* is unknown or has the wrong arity.

    Identifiers are deliberately not checked: the field set differs per lead.
    """
    for child in walk(node):
        if isinstance(child, FunctionCall):
            fn = functions.get(child.name.lower())
            if fn is None:
                raise UnknownFunctionError(child.name)
            fn.check_arity(len(child.args))


def validate(source: str) -> ValidationResult:
    """Statically check *source* without evaluating it against lead data."""
    try:
        check_functions(parse(source))
    except FormulaError as exc:
        return ValidationResult(valid=False, error=exc.detail)
    return ValidationResult(valid=True)
