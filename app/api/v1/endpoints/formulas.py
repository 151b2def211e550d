from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.exceptions import FormulaError
from app.core.rate_limit import limiter
from app.formula import describe_functions, evaluate_formula, validate
from app.schemas.formula import (
    FormulaEvaluateRequest,
    FormulaEvaluateResponse,
    FormulaValidateRequest,
    FormulaValidateResponse,
    FunctionCatalogueResponse,
)

router = APIRouter(prefix="/formulas", tags=["Formulas"])


@router.post("/validate", response_model=FormulaValidateResponse)
async def validate_formula(body: FormulaValidateRequest) -> FormulaValidateResponse:
    """Static check used while a user is typing a formula."""
    outcome = validate(body.formula)
    return FormulaValidateResponse(valid=outcome.valid, error=outcome.error)


@router.post(
    "/evaluate",
    response_model=FormulaEvaluateResponse,
    responses={422: {"description": "Formula could not be evaluated"}},
)
@limiter.limit(settings.RATE_LIMIT_EVALUATE)
async def evaluate(request: Request, body: FormulaEvaluateRequest):
    """Evaluate an ad-hoc formula against a caller-supplied context."""
    try:
        result = evaluate_formula(body.formula, body.context)
    except FormulaError as exc:
        return JSONResponse(status_code=422, content={"success": False, "error": exc.detail})
    return FormulaEvaluateResponse(result=result)


@router.get("/functions", response_model=FunctionCatalogueResponse)
async def list_functions() -> FunctionCatalogueResponse:
    return FunctionCatalogueResponse(categories=describe_functions())
