"""Request/response bodies for the standalone formula endpoints."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class FormulaValidateRequest(BaseModel):
    formula: str = Field(..., max_length=10_000)


class FormulaValidateResponse(BaseModel):
    valid: bool
    error: Optional[str] = None


class FormulaEvaluateRequest(BaseModel):
    formula: str = Field(..., min_length=1, max_length=10_000)
    context: Dict[str, Any] = Field(default_factory=dict)


class FormulaEvaluateResponse(BaseModel):
    success: bool = True
    result: Any = None


class FormulaEvaluateError(BaseModel):
    success: bool = False
    error: str


class FunctionInfo(BaseModel):
    name: str
    signature: str
    description: str
    min_args: int
    max_args: Optional[int] = None


class FunctionCatalogueResponse(BaseModel):
    categories: Dict[str, List[FunctionInfo]]
