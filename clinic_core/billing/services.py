# clinic_core/billing/services.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from clinic_core.billing import calculator, state_machine
from clinic_core.billing.history import append_history
from clinic_core.billing.integrations import AppointmentLookup, ModelAppointmentLookup
from clinic_core.billing.models import (
    BillingPayment,
    BillingReport,
    BillingService,
    PaymentMethod,
    ReportStatus,
    ReportType,
    ServiceCategory,
)
from clinic_core.billing.selectors import list_by_appointment, overdue_candidates
from clinic_core.billing.sequences import allocate_report_sequence, next_invoice_number
from clinic_core.common.api.exceptions import (
    ConcurrencyError,
    InvalidStateError,
    NotFoundError,
    OverpaymentError,
    ValidationError,
)
from clinic_core.common.retry import retry_on_contention

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


# -------------------------------------------------------------------
# Inputs
# -------------------------------------------------------------------

@dataclass(frozen=True)
class ServiceLineInput:
    description: str
    quantity: Any = Decimal("1.00")
    unit_price: Any = Decimal("0.00")
    category: str = ServiceCategory.OTHER
    procedure_code: str = ""
    tooth: Sequence[str] = ()
    provided_by: str = ""


@dataclass(frozen=True)
class ReportOptions:
    report_type: str = ReportType.COMPLETE_VISIT
    report_title: str = ""
    report_description: str = ""
    is_partial_report: bool = False
    parent_report_id: Any = None
    include_previous_services: bool = False
    discount: Any = Decimal("0.00")
    notes: str = ""


@dataclass(frozen=True)
class PaymentInput:
    amount: Any
    method: str = PaymentMethod.CASH
    reference: str = ""
    notes: str = ""
    date: Optional[datetime] = None
    # client-supplied stable id; resubmitting the same id is a no-op
    payment_id: Any = None


@dataclass(frozen=True)
class NormalizedLine:
    description: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal
    category: str
    procedure_code: str = ""
    tooth: list = field(default_factory=list)
    provided_by: str = ""


def _get(line: Any, name: str, default: Any = None) -> Any:
    if isinstance(line, Mapping):
        return line.get(name, default)
    return getattr(line, name, default)


def normalize_line(line: Any, *, default_provider: str = "") -> NormalizedLine:
    """
    Validate one incoming service line (dict, ServiceLineInput or model row).
    """
    description = str(_get(line, "description", "") or "").strip()
    if not description:
        raise ValidationError({"services": "Each service line needs a description."})

    quantity = calculator.to_money(_get(line, "quantity", "1"), field="quantity")
    unit_price = calculator.to_money(_get(line, "unit_price", "0"), field="unit_price")

    category = _get(line, "category", None) or ServiceCategory.OTHER
    if category not in ServiceCategory.values:
        raise ValidationError({"category": f"Unknown service category '{category}'."})

    tooth = _get(line, "tooth", None) or []
    if isinstance(tooth, str):
        tooth = [tooth]

    return NormalizedLine(
        description=description,
        quantity=quantity,
        unit_price=unit_price,
        total=calculator.line_total(quantity, unit_price),
        category=category,
        procedure_code=str(_get(line, "procedure_code", "") or ""),
        tooth=[str(t) for t in tooth],
        provided_by=str(_get(line, "provided_by", "") or default_provider),
    )


def copy_lines(rows: Iterable[BillingService]) -> list[NormalizedLine]:
    return [
        NormalizedLine(
            description=r.description,
            quantity=r.quantity,
            unit_price=r.unit_price,
            total=calculator.line_total(r.quantity, r.unit_price),
            category=r.category,
            procedure_code=r.procedure_code,
            tooth=list(r.tooth or []),
            provided_by=r.provided_by,
        )
        for r in rows
    ]


# -------------------------------------------------------------------
# Shared plumbing
# -------------------------------------------------------------------

class BaseBillingService:
    """
    Clock + appointment lookup injection and the locking/lookup helpers shared
    by the report, relationship and archival services.
    """

    def __init__(self, *, clock: Clock | None = None, appointments: AppointmentLookup | None = None) -> None:
        self._clock = clock or timezone.now
        self._appointments = appointments or ModelAppointmentLookup()

    def now(self) -> datetime:
        return self._clock()

    @staticmethod
    def _require_actor(actor: str | None, field_name: str = "performed_by") -> str:
        value = str(actor or "").strip()
        if not value:
            raise ValidationError({field_name: "An actor id is required for audited operations."})
        return value

    @staticmethod
    def _get_report(report_id: Any, *, lock: bool = False) -> BillingReport:
        qs = BillingReport.objects.all()
        if lock:
            qs = qs.select_for_update()
        try:
            return qs.get(id=report_id)
        except (BillingReport.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFoundError(f"Billing report {report_id} not found.")

    @staticmethod
    def _create_lines(report: BillingReport, lines: Sequence[NormalizedLine]) -> None:
        BillingService.objects.bulk_create(
            [
                BillingService(
                    report=report,
                    position=i,
                    description=l.description,
                    quantity=l.quantity,
                    unit_price=l.unit_price,
                    total=l.total,
                    category=l.category,
                    procedure_code=l.procedure_code,
                    tooth=l.tooth,
                    provided_by=l.provided_by,
                )
                for i, l in enumerate(lines, start=1)
            ]
        )

    @staticmethod
    def _insert_report(**fields: Any) -> BillingReport:
        try:
            with transaction.atomic():
                return BillingReport.objects.create(**fields)
        except IntegrityError as exc:
            raise ConcurrencyError(
                f"Report sequence {fields.get('report_sequence')} already taken for appointment "
                f"{fields.get('appointment_id')}."
            ) from exc

    def _record(
        self,
        report: BillingReport,
        *,
        previous_status: str | None,
        details: str,
        performed_by: str,
        amount: Decimal | None = None,
    ) -> None:
        append_history(
            report=report,
            previous_status=previous_status,
            new_status=report.status,
            details=details,
            performed_by=performed_by,
            performed_at=self.now(),
            amount=amount,
        )


# -------------------------------------------------------------------
# Report store + payment ledger
# -------------------------------------------------------------------

class BillingReportService(BaseBillingService):
    """
    Billing report write-model.

    Lifecycle: draft -> completed -> {partially_paid <-> paid}; see
    state_machine.ALLOWED_TRANSITIONS for the full table.

    Every mutating method runs in one transaction, locks the report row it
    modifies, requires a non-empty actor id and appends a status history entry.
    Contention/persistence failures are retried (common.retry); pass
    timeout=<seconds> to bound the retries.
    """

    # -------------------------
    # Create
    # -------------------------
    @retry_on_contention
    @transaction.atomic
    def create_report(
        self,
        *,
        appointment_id: str,
        created_by: str,
        options: ReportOptions | None = None,
        initial_services: Iterable[Any] | None = None,
    ) -> str:
        created_by = self._require_actor(created_by, "created_by")
        options = options or ReportOptions()

        appointment = self._appointments.get_appointment(str(appointment_id))
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found.")

        if options.report_type not in ReportType.values:
            raise ValidationError({"report_type": f"Unknown report type '{options.report_type}'."})

        lines = [normalize_line(s, default_provider=appointment.doctor_id) for s in (initial_services or [])]

        parent = None
        if options.parent_report_id:
            parent = self._get_report(options.parent_report_id)
            if options.include_previous_services:
                lines.extend(copy_lines(parent.services.all()))

        totals = calculator.compute_totals(lines, discount=options.discount)
        sequence = allocate_report_sequence(appointment_id=appointment.appointment_id)

        report = self._insert_report(
            appointment_id=appointment.appointment_id,
            patient_id=appointment.patient_id,
            doctor_id=appointment.doctor_id,
            report_type=options.report_type,
            report_title=options.report_title,
            report_description=options.report_description,
            is_partial_report=bool(options.is_partial_report or sequence > 1),
            report_sequence=sequence,
            parent_report=parent,
            status=ReportStatus.DRAFT,
            notes=options.notes,
            created_by=created_by,
            last_modified_by=created_by,
            **totals.as_fields(),
        )
        self._create_lines(report, lines)
        self._record(
            report,
            previous_status=None,
            details=f"Billing report created (#{sequence})",
            performed_by=created_by,
            amount=totals.total,
        )

        logger.info(
            "Created billing report %s for appointment %s (sequence %s) by %s",
            report.id,
            appointment.appointment_id,
            sequence,
            created_by,
        )
        return str(report.id)

    # -------------------------
    # Reads
    # -------------------------
    def get_report(self, report_id: Any) -> BillingReport:
        return self._get_report(report_id)

    def list_by_appointment(self, appointment_id: str, *, include_deleted: bool = True):
        return list_by_appointment(appointment_id=appointment_id, include_deleted=include_deleted)

    def get_payment_suggestions(self, report_id: Any) -> list[dict[str, Any]]:
        report = self._get_report(report_id)
        if report.status not in state_machine.PAYABLE_STATUSES:
            return []
        return calculator.quick_payment_options(report.pending_amount)

    # -------------------------
    # Draft editing
    # -------------------------
    def _apply_totals(self, report: BillingReport, totals: calculator.Totals) -> list[str]:
        for name, value in totals.as_fields().items():
            setattr(report, name, value)
        return list(totals.as_fields().keys())

    @retry_on_contention
    @transaction.atomic
    def update_services(
        self,
        *,
        report_id: Any,
        services: Iterable[Any],
        updated_by: str,
        discount: Any = None,
    ) -> BillingReport:
        updated_by = self._require_actor(updated_by, "updated_by")
        report = self._get_report(report_id, lock=True)
        state_machine.ensure_status(report, {ReportStatus.DRAFT}, "edit services of")

        lines = [normalize_line(s, default_provider=report.doctor_id) for s in services]
        totals = calculator.compute_totals(
            lines,
            discount=report.discount if discount is None else discount,
            paid_amount=report.paid_amount,
        )

        report.services.all().delete()
        self._create_lines(report, lines)

        update_fields = self._apply_totals(report, totals)
        report.last_modified_by = updated_by
        report.save(update_fields=update_fields + ["last_modified_by", "updated_at"])

        self._record(
            report,
            previous_status=report.status,
            details=f"Services updated. New total: ${totals.total}",
            performed_by=updated_by,
            amount=totals.total,
        )
        logger.info("Updated services of report %s (%s lines) by %s", report.id, len(lines), updated_by)
        return report

    @retry_on_contention
    @transaction.atomic
    def update_discount(self, *, report_id: Any, discount: Any, updated_by: str) -> BillingReport:
        updated_by = self._require_actor(updated_by, "updated_by")
        report = self._get_report(report_id, lock=True)
        state_machine.ensure_status(report, {ReportStatus.DRAFT}, "change the discount of")

        totals = calculator.compute_totals(
            report.services.all(),
            discount=discount,
            paid_amount=report.paid_amount,
        )
        update_fields = self._apply_totals(report, totals)
        report.last_modified_by = updated_by
        report.save(update_fields=update_fields + ["last_modified_by", "updated_at"])

        self._record(
            report,
            previous_status=report.status,
            details=f"Discount set to ${totals.discount}. New total: ${totals.total}",
            performed_by=updated_by,
            amount=totals.discount,
        )
        return report

    # -------------------------
    # Completion / cancellation
    # -------------------------
    @retry_on_contention
    @transaction.atomic
    def complete_report(self, *, report_id: Any, performed_by: str, notes: str | None = None) -> BillingReport:
        performed_by = self._require_actor(performed_by)
        report = self._get_report(report_id, lock=True)

        if report.status != ReportStatus.DRAFT:
            raise InvalidStateError("Only draft reports can be completed.", current_status=report.status)
        if not report.services.exists():
            raise ValidationError({"report": "Cannot complete a report without services."})

        now = self.now()
        terms = int(settings.BILLING.get("PAYMENT_TERMS_DAYS", 30))

        # invoice number is assigned exactly once, on leaving draft
        if not report.invoice_number:
            report.invoice_number = next_invoice_number(now=now)
        report.invoice_date = now
        report.due_date = now + timedelta(days=terms)
        if notes is not None:
            report.notes = notes

        # copied payments (duplicate with include_payments) settle immediately
        target = calculator.derive_settlement_status(report.total, report.paid_amount) or ReportStatus.COMPLETED
        previous = state_machine.transition(report, target)
        report.last_modified_by = performed_by
        report.save(
            update_fields=[
                "invoice_number",
                "invoice_date",
                "due_date",
                "notes",
                "status",
                "last_modified_by",
                "updated_at",
            ]
        )

        self._record(
            report,
            previous_status=previous,
            details=f"Report completed. Invoice number: {report.invoice_number}",
            performed_by=performed_by,
            amount=report.total,
        )
        logger.info("Completed report %s as %s by %s", report.id, report.invoice_number, performed_by)
        return report

    @retry_on_contention
    @transaction.atomic
    def cancel_report(self, *, report_id: Any, performed_by: str, reason: str = "") -> BillingReport:
        performed_by = self._require_actor(performed_by)
        report = self._get_report(report_id, lock=True)

        state_machine.ensure_status(
            report,
            {ReportStatus.DRAFT, ReportStatus.COMPLETED, ReportStatus.OVERDUE},
            "cancel",
        )
        if report.paid_amount > 0 or report.payments.exists():
            raise InvalidStateError(
                "Cannot cancel a report with recorded payments.",
                current_status=report.status,
            )

        previous = state_machine.transition(report, ReportStatus.CANCELLED)
        report.last_modified_by = performed_by
        report.save(update_fields=["status", "last_modified_by", "updated_at"])

        self._record(
            report,
            previous_status=previous,
            details=f"Report cancelled. {reason}".strip(),
            performed_by=performed_by,
        )
        return report

    # -------------------------
    # Notes / PDF bookkeeping
    # -------------------------
    @retry_on_contention
    @transaction.atomic
    def update_notes(
        self,
        *,
        report_id: Any,
        updated_by: str,
        notes: str | None = None,
        internal_notes: str | None = None,
    ) -> BillingReport:
        updated_by = self._require_actor(updated_by, "updated_by")
        report = self._get_report(report_id, lock=True)
        state_machine.ensure_not_deleted(report, "edit notes of")

        if notes is not None:
            report.notes = notes
        if internal_notes is not None:
            report.internal_notes = internal_notes
        report.last_modified_by = updated_by
        report.save(update_fields=["notes", "internal_notes", "last_modified_by", "updated_at"])
        return report

    @retry_on_contention
    @transaction.atomic
    def mark_pdf_generated(self, *, report_id: Any, pdf_url: str, generated_by: str) -> BillingReport:
        generated_by = self._require_actor(generated_by, "generated_by")
        report = self._get_report(report_id, lock=True)
        state_machine.ensure_not_deleted(report, "generate a PDF for")

        report.pdf_generated = True
        report.pdf_url = pdf_url or ""
        report.last_modified_by = generated_by
        report.save(update_fields=["pdf_generated", "pdf_url", "last_modified_by", "updated_at"])

        self._record(
            report,
            previous_status=report.status,
            details="PDF invoice generated",
            performed_by=generated_by,
        )
        return report

    # -------------------------
    # Payment ledger
    # -------------------------
    @retry_on_contention
    @transaction.atomic
    def add_payment(self, *, report_id: Any, payment: PaymentInput, performed_by: str) -> BillingPayment:
        performed_by = self._require_actor(performed_by)
        report = self._get_report(report_id, lock=True)

        if payment.payment_id:
            existing = BillingPayment.objects.filter(id=payment.payment_id).first()
            if existing is not None:
                if existing.report_id != report.id:
                    raise ValidationError({"payment_id": "Payment id already used on another report."})
                logger.info("Payment %s already recorded on report %s; ignoring resubmission", existing.id, report.id)
                return existing

        state_machine.ensure_not_deleted(report, "record a payment on")
        if report.status not in state_machine.PAYABLE_STATUSES:
            raise InvalidStateError(
                f"Payments require a completed report (current status '{report.status}').",
                current_status=report.status,
            )

        amount = calculator.to_money(payment.amount)
        if amount <= 0:
            raise ValidationError({"amount": "Payment amount must be > 0."})
        if payment.method not in PaymentMethod.values:
            raise ValidationError({"method": f"Unknown payment method '{payment.method}'."})
        if amount > report.pending_amount:
            raise OverpaymentError(
                f"Payment of ${amount} exceeds the pending balance of ${report.pending_amount}.",
                pending_amount=report.pending_amount,
                attempted_amount=amount,
            )

        now = self.now()
        extra = {"id": payment.payment_id} if payment.payment_id else {}
        pay = BillingPayment.objects.create(
            report=report,
            amount=amount,
            method=payment.method,
            reference=payment.reference or "",
            notes=payment.notes or "",
            date=payment.date or now,
            processed_by=performed_by,
            verified=True,
            verified_by=performed_by,
            verified_at=now,
            **extra,
        )

        paid = report.payments.aggregate(s=Sum("amount"))["s"] or calculator.ZERO
        report.paid_amount = calculator.to_money(paid)
        report.pending_amount = calculator.pending_amount(report.total, report.paid_amount)

        target = calculator.derive_settlement_status(report.total, report.paid_amount)
        previous = state_machine.transition(report, target)
        report.last_modified_by = performed_by
        report.save(update_fields=["paid_amount", "pending_amount", "status", "last_modified_by", "updated_at"])

        self._record(
            report,
            previous_status=previous,
            details=f"Payment of ${amount} via {payment.method}",
            performed_by=performed_by,
            amount=amount,
        )
        logger.info(
            "Recorded payment %s of %s on report %s (%s -> %s) by %s",
            pay.id,
            amount,
            report.id,
            previous,
            report.status,
            performed_by,
        )
        return pay

    # -------------------------
    # Overdue reconciler
    # -------------------------
    @transaction.atomic
    def mark_overdue_reports(
        self,
        *,
        performed_by: str = "system",
        now: datetime | None = None,
        doctor_id: str | None = None,
    ) -> int:
        """
        Persist the derived 'overdue' status for completed / partially paid
        reports whose due date passed with a balance outstanding.
        """
        now = now or self.now()
        count = 0
        for report in overdue_candidates(now=now, doctor_id=doctor_id).select_for_update():
            previous = state_machine.transition(report, ReportStatus.OVERDUE)
            report.last_modified_by = performed_by
            report.save(update_fields=["status", "last_modified_by", "updated_at"])
            self._record(
                report,
                previous_status=previous,
                details=f"Marked overdue (due {report.due_date:%Y-%m-%d}, pending ${report.pending_amount})",
                performed_by=performed_by,
                amount=report.pending_amount,
            )
            count += 1

        if count:
            logger.info("Marked %s billing report(s) overdue", count)
        return count
