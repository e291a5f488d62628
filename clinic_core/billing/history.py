# clinic_core/billing/history.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from django.db.models import Max

from clinic_core.billing.models import BillingReport, BillingStatusHistory


def append_history(
    *,
    report: BillingReport,
    previous_status: str | None,
    new_status: str,
    details: str,
    performed_by: str,
    performed_at: datetime,
    amount: Decimal | None = None,
) -> BillingStatusHistory:
    """
    Append one entry to the report's status history.

    Entries are never rewritten. performed_at is clamped so it never goes
    backwards relative to the previous entry (clock skew between terminals).
    """
    last = (
        BillingStatusHistory.objects.filter(report=report)
        .aggregate(position=Max("position"), performed_at=Max("performed_at"))
    )
    position = (last["position"] or 0) + 1

    at = performed_at
    if last["performed_at"] is not None and last["performed_at"] > at:
        at = last["performed_at"]

    return BillingStatusHistory.objects.create(
        report=report,
        position=position,
        previous_status=previous_status,
        new_status=new_status,
        details=details,
        amount=amount,
        performed_by=performed_by,
        performed_at=at,
    )
