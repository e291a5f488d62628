# clinic_core/billing/reporting.py
"""
Read-side aggregates for the billing dashboard.

Revenue comes from non-deleted billing reports created inside the period;
expenses count only once approved or paid. Percentages are rounded to two
decimals.
"""
from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from django.utils import timezone

from clinic_core.billing.calculator import CENT, ZERO
from clinic_core.billing.models import BillingPayment, BillingService, ReportStatus
from clinic_core.billing.selectors import reports_filtered
from clinic_core.billing.state_machine import ISSUED_STATUSES
from clinic_core.expenses.models import ExpenseStatus
from clinic_core.expenses.selectors import COUNTED_STATUSES, expenses_filtered

HUNDRED = Decimal("100")


def _pct(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO
    return (part / whole * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


def _is_overdue(report, now: datetime) -> bool:
    if report.due_date is None or report.status == ReportStatus.PAID:
        return False
    return report.due_date < now and report.pending_amount > 0


def _month_key(dt: datetime) -> str:
    return timezone.localtime(dt).strftime("%Y-%m") if timezone.is_aware(dt) else dt.strftime("%Y-%m")


def get_billing_dashboard(
    *,
    start: datetime,
    end: datetime,
    doctor_id: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    now = now or timezone.now()

    reports = list(reports_filtered(doctor_id=doctor_id, start=start, end=end))
    report_ids = [r.id for r in reports]
    expenses = list(expenses_filtered(start=start, end=end))

    total_revenue = sum((r.total for r in reports), ZERO)
    paid_revenue = sum((r.paid_amount for r in reports), ZERO)
    pending_revenue = sum((r.pending_amount for r in reports), ZERO)
    overdue = [r for r in reports if _is_overdue(r, now)]
    overdue_revenue = sum((r.pending_amount for r in overdue), ZERO)

    total_expenses = sum((e.amount for e in expenses if e.status in COUNTED_STATUSES), ZERO)
    approved_expenses = sum((e.amount for e in expenses if e.status == ExpenseStatus.APPROVED), ZERO)
    pending_expenses = sum((e.amount for e in expenses if e.status == ExpenseStatus.PENDING), ZERO)

    net_income = paid_revenue - total_expenses

    # payment methods
    methods: dict[str, dict[str, Any]] = OrderedDict()
    for p in BillingPayment.objects.filter(report_id__in=report_ids).order_by("date", "id"):
        row = methods.setdefault(p.method, {"method": p.method, "count": 0, "amount": ZERO})
        row["count"] += 1
        row["amount"] += p.amount
    for row in methods.values():
        row["percentage"] = _pct(row["amount"], paid_revenue)

    # service categories (count is quantity-weighted)
    categories: dict[str, dict[str, Any]] = OrderedDict()
    for s in BillingService.objects.filter(report_id__in=report_ids).order_by("report_id", "position"):
        row = categories.setdefault(s.category, {"category": s.category, "count": ZERO, "revenue": ZERO})
        row["count"] += s.quantity
        row["revenue"] += s.total
    for row in categories.values():
        if row["count"] > 0:
            row["average_price"] = (row["revenue"] / row["count"]).quantize(CENT, rounding=ROUND_HALF_UP)
        else:
            row["average_price"] = ZERO

    # monthly trends: paid revenue by report creation month, counted expenses by expense month
    months: dict[str, dict[str, Any]] = {}

    def _month(key: str) -> dict[str, Any]:
        return months.setdefault(key, {"month": key, "revenue": ZERO, "expenses": ZERO, "report_count": 0})

    for r in reports:
        m = _month(_month_key(r.created_at))
        m["revenue"] += r.paid_amount
        m["report_count"] += 1
    for e in expenses:
        if e.status in COUNTED_STATUSES:
            _month(_month_key(e.date))["expenses"] += e.amount

    trends = []
    for key in sorted(months):
        m = months[key]
        m["net_income"] = m["revenue"] - m["expenses"]
        trends.append(m)

    return {
        "period": {"start": start, "end": end},
        "total_revenue": total_revenue,
        "paid_revenue": paid_revenue,
        "pending_revenue": pending_revenue,
        "overdue_revenue": overdue_revenue,
        "total_expenses": total_expenses,
        "approved_expenses": approved_expenses,
        "pending_expenses": pending_expenses,
        "net_income": net_income,
        "gross_margin": _pct(net_income, paid_revenue),
        "total_reports": len(reports),
        "completed_reports": sum(1 for r in reports if r.status in ISSUED_STATUSES),
        "draft_reports": sum(1 for r in reports if r.status == ReportStatus.DRAFT),
        "overdue_reports": len(overdue),
        "payment_method_breakdown": list(methods.values()),
        "service_category_breakdown": list(categories.values()),
        "monthly_trends": trends,
    }


def get_revenue_summary(*, doctor_id: str | None = None, now: datetime | None = None) -> dict[str, Decimal]:
    """
    Paid amount of reports created since the start of today / this week
    (weeks start on Sunday) / this month / this year.
    """
    now = timezone.localtime(now or timezone.now())
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    # isoweekday: Monday=1 .. Sunday=7
    start_of_week = start_of_day - timedelta(days=start_of_day.isoweekday() % 7)
    start_of_month = start_of_day.replace(day=1)
    start_of_year = start_of_month.replace(month=1)

    def _paid_since(start: datetime) -> Decimal:
        qs = reports_filtered(doctor_id=doctor_id, start=start)
        return sum((r.paid_amount for r in qs.only("paid_amount")), ZERO)

    return {
        "today": _paid_since(start_of_day),
        "this_week": _paid_since(start_of_week),
        "this_month": _paid_since(start_of_month),
        "this_year": _paid_since(start_of_year),
    }
