from fastapi import APIRouter

from app.api.v1.routers import health, loan_workflow, loans

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(loans.router)
api_router.include_router(loan_workflow.router)

__all__ = ["api_router"]
