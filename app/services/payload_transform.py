"""Webhook payload transforms.

A transform is a single formula expression evaluated with the event
payload bound to one argument name, e.g. ``p => upper(p.lead.name)``.
Without an arrow head the argument is called ``payload``. Object literals
and statements are not part of the language.
"""

import logging
import re
from typing import Any, Tuple

from app.core.exceptions import FormulaError, InvalidTransformError
from app.formula import check_functions, evaluate, parse

logger = logging.getLogger(__name__)

DEFAULT_ARGUMENT = "payload"

_ARROW_RE = re.compile(
    r"^\s*(?:\(\s*(?P<paren>[A-Za-z_][A-Za-z0-9_]*)\s*\)|(?P<bare>[A-Za-z_][A-Za-z0-9_]*))\s*=>(?P<body>.*)$",
    re.DOTALL,
)


def split_transform(script: str) -> Tuple[str, str]:
    """Return ``(argument_name, expression)`` for a transform script."""
    match = _ARROW_RE.match(script or "")
    if match is None:
        return DEFAULT_ARGUMENT, (script or "").strip()
    name = match.group("paren") or match.group("bare")
    return name, match.group("body").strip()


def validate_transform(script: str) -> None:
    """Raise :class:`InvalidTransformError` unless *script* is a usable transform."""
    _, expression = split_transform(script)
    if not expression:
        raise InvalidTransformError("Transform script has no expression")
    try:
        check_functions(parse(expression))
    except FormulaError as exc:
        raise InvalidTransformError(f"Invalid transform script: {exc.detail}") from exc


def apply_transform(script: str, payload: Any) -> Any:
    """Evaluate the transform against *payload*; raises on any formula error."""
    argument, expression = split_transform(script)
    return evaluate(parse(expression), {argument: payload})


def transform_or_original(script: str, payload: Any) -> Tuple[Any, bool]:
    """Return ``(body, transformed)``; falls back to *payload* on failure."""
    try:
        return apply_transform(script, payload), True
    except FormulaError as exc:
        logger.warning("Webhook transform failed, sending original payload: %s", exc.detail)
        return payload, False
