from typing import Optional


class CRMError(Exception):
    """Base class for all domain exceptions.

    Every custom exception in this module inherits from here so that a
    single ``except CRMError`` clause can catch any domain error.
    """

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Formula engine
# ---------------------------------------------------------------------------


class FormulaError(CRMError):
    """Base class for anything that goes wrong parsing or evaluating a formula."""

    def __init__(self, detail: str = "Formula error"):
        super().__init__(detail)


class FormulaSyntaxError(FormulaError):
    """Raised when a formula cannot be tokenized or parsed.

    ``position`` is the zero-based character offset of the offending
    token when it is known.
    """

    def __init__(self, detail: str = "Invalid formula syntax", position: Optional[int] = None):
        self.position = position
        super().__init__(detail)


class UnknownFunctionError(FormulaError):
    """Raised when a formula calls a function outside the built-in catalogue."""

    def __init__(self, name: str):
        self.function_name = name
        super().__init__(f"Unknown function: {name}")


class ArgumentError(FormulaError):
    """Raised when a function is called with the wrong number of arguments."""

    def __init__(self, detail: str = "Invalid function arguments"):
        super().__init__(detail)


class FormulaTypeError(FormulaError):
    """Raised when an operator receives operands it cannot coerce."""

    def __init__(self, detail: str = "Type mismatch in formula"):
        super().__init__(detail)


class EvaluationError(FormulaError):
    """Raised for runtime failures such as division by zero."""

    def __init__(self, detail: str = "Formula evaluation failed"):
        super().__init__(detail)


class InvalidFormulaError(CRMError):
    """Raised when a column is saved with a formula that fails validation."""

    def __init__(self, detail: str = "Invalid formula"):
        super().__init__(detail)


class InvalidTransformError(CRMError):
    """Raised when a webhook is saved with a transform script that fails validation."""

    def __init__(self, detail: str = "Invalid transform script"):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Lookups and conflicts
# ---------------------------------------------------------------------------


class NotFoundError(CRMError):
    """Raised when a requested record does not exist."""

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(detail)


class CalculatedColumnNotFoundError(NotFoundError):
    """Raised when a calculated column does not exist for the caller."""

    def __init__(self, detail: str = "Calculated column not found"):
        super().__init__(detail)


class WebhookNotFoundError(NotFoundError):
    """Raised when a webhook does not exist for the caller."""

    def __init__(self, detail: str = "Webhook not found"):
        super().__init__(detail)


class DeliveryNotFoundError(NotFoundError):
    """Raised when a webhook delivery record does not exist."""

    def __init__(self, detail: str = "Webhook delivery not found"):
        super().__init__(detail)


class DuplicateColumnNameError(CRMError):
    """Raised when an owner already has a column with the same normalised name."""

    def __init__(self, detail: str = "A calculated column with this name already exists"):
        super().__init__(detail)


class MissingUserIdentityError(CRMError):
    """Raised when the upstream gateway did not forward a user identity."""

    def __init__(self, detail: str = "Authenticated user identity is required"):
        super().__init__(detail)
