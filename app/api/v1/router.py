from fastapi import APIRouter

from app.api.v1.endpoints import calculated_columns, formulas, health, options, webhooks

router = APIRouter(prefix="/api/v1")

router.include_router(formulas.router)
router.include_router(calculated_columns.router)
router.include_router(webhooks.router)
router.include_router(options.router)
router.include_router(health.router)
