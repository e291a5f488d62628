# clinic_core/billing/selectors.py
from __future__ import annotations

from datetime import datetime

from django.db.models import Prefetch, QuerySet

from clinic_core.billing.models import BillingPayment, BillingReport, BillingService, ReportStatus


def reports_qs() -> QuerySet[BillingReport]:
    return BillingReport.objects.all()


def report_detail_qs() -> QuerySet[BillingReport]:
    return reports_qs().prefetch_related(
        Prefetch("services", queryset=BillingService.objects.order_by("position")),
        Prefetch("payments", queryset=BillingPayment.objects.order_by("date", "id")),
        "status_history",
    )


def reports_filtered(
    *,
    patient_id: str | None = None,
    doctor_id: str | None = None,
    appointment_id: str | None = None,
    status: str | None = None,
    report_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    include_deleted: bool = False,
) -> QuerySet[BillingReport]:
    qs = reports_qs().order_by("-created_at")

    if not include_deleted:
        qs = qs.filter(is_deleted=False)

    if patient_id:
        qs = qs.filter(patient_id=patient_id)

    if doctor_id:
        qs = qs.filter(doctor_id=doctor_id)

    if appointment_id:
        qs = qs.filter(appointment_id=appointment_id)

    if status:
        qs = qs.filter(status=status)

    if report_type:
        qs = qs.filter(report_type=report_type)

    if start:
        qs = qs.filter(created_at__gte=start)

    if end:
        qs = qs.filter(created_at__lte=end)

    return qs


def list_by_appointment(*, appointment_id: str, include_deleted: bool = True) -> QuerySet[BillingReport]:
    qs = reports_qs().filter(appointment_id=str(appointment_id))
    if not include_deleted:
        qs = qs.filter(is_deleted=False)
    return qs.order_by("report_sequence")


def overdue_candidates(*, now: datetime, doctor_id: str | None = None) -> QuerySet[BillingReport]:
    """
    Completed / partially paid reports past their due date with a balance left.
    """
    qs = reports_qs().filter(
        status__in=[ReportStatus.COMPLETED, ReportStatus.PARTIALLY_PAID],
        is_deleted=False,
        due_date__lt=now,
        pending_amount__gt=0,
    )
    if doctor_id:
        qs = qs.filter(doctor_id=doctor_id)
    return qs.order_by("due_date")
