from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.schemas.loan import (
    LoanApplicationDTO,
    LoanDisburseRequest,
    LoanNoteRequest,
    LoanReviewRequest,
)
from app.services import loan_operations
from app.services.identity import Principal

router = APIRouter(prefix="/loans", tags=["loan-workflow"])


@router.put("/{loan_id}/officer-review", response_model=LoanApplicationDTO, summary="Loan officer decision")
async def officer_review(
    loan_id: UUID,
    payload: LoanReviewRequest,
    principal: Principal = Depends(deps.get_current_principal),
    db: AsyncSession = Depends(deps.get_db_session),
) -> LoanApplicationDTO:
    application = await loan_operations.officer_review(
        db, principal, loan_id, payload.action, payload.remarks, expected_version=payload.expected_version
    )
    return LoanApplicationDTO.model_validate(application)


@router.put("/{loan_id}/manager-review", response_model=LoanApplicationDTO, summary="Branch manager decision")
async def manager_review(
    loan_id: UUID,
    payload: LoanReviewRequest,
    principal: Principal = Depends(deps.get_current_principal),
    db: AsyncSession = Depends(deps.get_db_session),
) -> LoanApplicationDTO:
    application = await loan_operations.manager_review(
        db, principal, loan_id, payload.action, payload.remarks, expected_version=payload.expected_version
    )
    return LoanApplicationDTO.model_validate(application)


@router.put("/{loan_id}/gm-review", response_model=LoanApplicationDTO, summary="General manager decision")
async def gm_review(
    loan_id: UUID,
    payload: LoanReviewRequest,
    principal: Principal = Depends(deps.get_current_principal),
    db: AsyncSession = Depends(deps.get_db_session),
) -> LoanApplicationDTO:
    application = await loan_operations.gm_review(
        db, principal, loan_id, payload.action, payload.remarks, expected_version=payload.expected_version
    )
    return LoanApplicationDTO.model_validate(application)


@router.put("/{loan_id}/disburse", response_model=LoanApplicationDTO, summary="Disburse a sanctioned loan")
async def disburse_loan(
    loan_id: UUID,
    payload: LoanDisburseRequest | None = None,
    principal: Principal = Depends(deps.get_current_principal),
    db: AsyncSession = Depends(deps.get_db_session),
) -> LoanApplicationDTO:
    payload = payload or LoanDisburseRequest()
    application = await loan_operations.disburse(
        db,
        principal,
        loan_id,
        disbursement_account=payload.disbursement_account,
        expected_version=payload.expected_version,
    )
    return LoanApplicationDTO.model_validate(application)


@router.put("/{loan_id}/note", response_model=LoanApplicationDTO, summary="Add an internal note")
async def add_note(
    loan_id: UUID,
    payload: LoanNoteRequest,
    principal: Principal = Depends(deps.get_current_principal),
    db: AsyncSession = Depends(deps.get_db_session),
) -> LoanApplicationDTO:
    application = await loan_operations.add_note(
        db, principal, loan_id, payload.note, expected_version=payload.expected_version
    )
    return LoanApplicationDTO.model_validate(application)
