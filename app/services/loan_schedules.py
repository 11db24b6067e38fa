from __future__ import annotations

import calendar
from datetime import date
from decimal import Decimal

from app.schemas.loan import LoanScheduleEntry
from app.services.loan_terms import monthly_rate, round_units


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def build_emi_schedule(
    *,
    principal,
    annual_rate_percent,
    term_months: int,
    emi_amount,
    start_date: date,
) -> list[LoanScheduleEntry]:
    """Amortize ``principal`` over ``term_months`` using the EMI fixed at creation.

    Each installment is rounded to whole units on its own; the final installment
    takes whatever balance is left so the loan always closes at exactly zero.
    """
    if term_months <= 0:
        raise ValueError("term_months must be >= 1")

    balance = _as_decimal(principal)
    emi = _as_decimal(emi_amount)
    rate = monthly_rate(annual_rate_percent)
    entries: list[LoanScheduleEntry] = []
    for installment_no in range(1, term_months + 1):
        interest = round_units(balance * rate)
        if installment_no == term_months:
            principal_portion = balance
        else:
            principal_portion = max(Decimal("0"), min(round_units(emi - interest), balance))
        balance -= principal_portion
        entries.append(
            LoanScheduleEntry(
                installment_no=installment_no,
                due_date=add_months(start_date, installment_no),
                principal_amount=principal_portion,
                interest_amount=interest,
                total_amount=principal_portion + interest,
                remaining_balance=balance,
            )
        )
    return entries
