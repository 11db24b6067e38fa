from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.schemas.loan import (
    LoanApplicationCreate,
    LoanApplicationDTO,
    LoanApplicationListResponse,
    LoanResubmitRequest,
    LoanStatsSummary,
    LoanType,
    WorkflowStage,
)
from app.services import loan_operations
from app.services.identity import Principal

router = APIRouter(prefix="/loans", tags=["loans"])


@router.post(
    "",
    response_model=LoanApplicationDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a new loan application",
)
async def submit_loan(
    payload: LoanApplicationCreate,
    principal: Principal = Depends(deps.get_current_principal),
    db: AsyncSession = Depends(deps.get_db_session),
) -> LoanApplicationDTO:
    application = await loan_operations.submit(db, principal, payload)
    return LoanApplicationDTO.model_validate(application)


@router.get("", response_model=LoanApplicationListResponse, summary="List loans visible to the caller")
async def list_loans(
    stage: WorkflowStage | None = Query(default=None),
    loan_type: LoanType | None = Query(default=None, alias="type"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(deps.get_current_principal),
    db: AsyncSession = Depends(deps.get_db_session),
) -> LoanApplicationListResponse:
    items, total = await loan_operations.list_loans(
        db, principal, stage=stage, loan_type=loan_type, limit=limit, offset=offset
    )
    return LoanApplicationListResponse(
        items=[LoanApplicationDTO.model_validate(item) for item in items],
        total=total,
    )


@router.get("/stats", response_model=LoanStatsSummary, summary="Loan counts for the caller's scope")
async def loan_stats(
    principal: Principal = Depends(deps.get_current_principal),
    db: AsyncSession = Depends(deps.get_db_session),
) -> LoanStatsSummary:
    return await loan_operations.stats(db, principal)


@router.get("/{loan_id}", response_model=LoanApplicationDTO, summary="Get a single loan")
async def get_loan(
    loan_id: UUID,
    principal: Principal = Depends(deps.get_current_principal),
    db: AsyncSession = Depends(deps.get_db_session),
) -> LoanApplicationDTO:
    application = await loan_operations.get_loan(db, principal, loan_id)
    return LoanApplicationDTO.model_validate(application)


@router.put("/{loan_id}/resubmit", response_model=LoanApplicationDTO, summary="Resubmit a returned loan")
async def resubmit_loan(
    loan_id: UUID,
    payload: LoanResubmitRequest,
    principal: Principal = Depends(deps.get_current_principal),
    db: AsyncSession = Depends(deps.get_db_session),
) -> LoanApplicationDTO:
    application = await loan_operations.resubmit(db, principal, loan_id, payload)
    return LoanApplicationDTO.model_validate(application)


@router.delete("/{loan_id}", summary="Delete a loan (administrators only)")
async def delete_loan(
    loan_id: UUID,
    principal: Principal = Depends(deps.get_current_principal),
    db: AsyncSession = Depends(deps.get_db_session),
) -> dict:
    await loan_operations.delete_loan(db, principal, loan_id)
    return {"id": str(loan_id), "deleted": True}
