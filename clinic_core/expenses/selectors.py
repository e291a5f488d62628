# clinic_core/expenses/selectors.py
from __future__ import annotations

from datetime import datetime

from django.db.models import QuerySet

from clinic_core.expenses.models import Expense, ExpenseStatus

COUNTED_STATUSES = (ExpenseStatus.APPROVED, ExpenseStatus.PAID)


def expenses_qs() -> QuerySet[Expense]:
    return Expense.objects.all()


def expenses_filtered(
    *,
    category: str | None = None,
    status: str | None = None,
    submitted_by: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> QuerySet[Expense]:
    qs = expenses_qs().order_by("-date")

    if category:
        qs = qs.filter(category=category)

    if status:
        qs = qs.filter(status=status)

    if submitted_by:
        qs = qs.filter(submitted_by=submitted_by)

    if start:
        qs = qs.filter(date__gte=start)

    if end:
        qs = qs.filter(date__lte=end)

    return qs
