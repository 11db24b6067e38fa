"""Persistence for loan applications.

Workflow transitions never write columns through ``apply_updates``; it is the
only path for caller-supplied field changes and refuses anything derived or
owned by the workflow.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.settings import settings
from app.models.loan_application import APPLICATION_NUMBER_SEQUENCE, LoanApplication
from app.schemas.loan import LoanApplicationCreate
from app.services import loan_terms
from app.services.loan_errors import Conflict, LoanNotFound, LoanValidationError

logger = logging.getLogger(__name__)

PROTECTED_FIELDS = frozenset(
    {
        "id",
        "application_number",
        "applicant_id",
        "loan_type",
        "amount",
        "term_months",
        "interest_rate",
        "emi_amount",
        "processing_fee",
        "collateral_required",
        "guarantor_required",
        "workflow_stage",
        "status",
        "approval_chain",
        "emi_schedule",
        "submitted_at",
        "sanctioned_at",
        "disbursement_date",
        "closed_at",
        "version",
        "created_at",
    }
)


def format_application_number(year: int, sequence_value: int) -> str:
    return f"{settings.application_number_prefix}{year}{int(sequence_value):06d}"


async def next_application_number(db: AsyncSession, now: datetime) -> str:
    result = await db.execute(select(APPLICATION_NUMBER_SEQUENCE.next_value()))
    return format_application_number(now.year, result.scalar_one())


async def create_application(
    db: AsyncSession,
    draft: LoanApplicationCreate,
    *,
    applicant_id: UUID,
    now: datetime,
) -> LoanApplication:
    loan_terms.validate_draft(draft)
    application_number = await next_application_number(db, now)
    application = loan_terms.build_application(
        draft,
        applicant_id=applicant_id,
        application_number=application_number,
        now=now,
    )
    db.add(application)
    return application


async def get_application(db: AsyncSession, loan_id: UUID) -> LoanApplication:
    result = await db.execute(select(LoanApplication).where(LoanApplication.id == loan_id))
    application = result.scalar_one_or_none()
    if application is None:
        raise LoanNotFound("Loan not found.", details={"loan_id": str(loan_id)})
    return application


def apply_updates(application: LoanApplication, changes: dict[str, Any]) -> dict[str, Any]:
    blocked = sorted(set(changes) & PROTECTED_FIELDS)
    if blocked:
        raise LoanValidationError("These fields cannot be updated directly.", details={"fields": blocked})
    unknown = sorted(name for name in changes if name not in LoanApplication.__table__.columns)
    if unknown:
        raise LoanValidationError("Unknown loan fields.", details={"fields": unknown})
    for name, value in changes.items():
        setattr(application, name, value)
    return changes


async def commit(db: AsyncSession, application: LoanApplication) -> None:
    try:
        await db.commit()
    except (StaleDataError, IntegrityError) as exc:
        await db.rollback()
        logger.warning("Concurrent write rejected for loan %s: %s", application.id, exc)
        raise Conflict(
            "The loan was changed by another request. Reload it and try again.",
            details={"loan_id": str(application.id)},
        ) from exc


async def delete_application(db: AsyncSession, application: LoanApplication) -> None:
    await db.delete(application)
