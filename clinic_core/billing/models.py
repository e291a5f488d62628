# clinic_core/billing/models.py
from __future__ import annotations

import uuid
from decimal import Decimal

from django.db import models
from django.db.models import Q

from clinic_core.common.models import TimeStampedModel, UUIDModel

ZERO = Decimal("0.00")


class ReportStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    COMPLETED = "completed", "Completed"
    PAID = "paid", "Paid"
    PARTIALLY_PAID = "partially_paid", "Partially Paid"
    OVERDUE = "overdue", "Overdue"
    CANCELLED = "cancelled", "Cancelled"
    ARCHIVED = "archived", "Archived"
    DELETED = "deleted", "Deleted"


class ReportType(models.TextChoices):
    COMPLETE_VISIT = "complete_visit", "Complete Visit"
    PARTIAL_TREATMENT = "partial_treatment", "Partial Treatment"
    PRODUCT_SALE = "product_sale", "Product Sale"
    ADDITIONAL_SERVICE = "additional_service", "Additional Service"
    EMERGENCY_ADDON = "emergency_addon", "Emergency Add-on"
    INSURANCE_CLAIM = "insurance_claim", "Insurance Claim"


class LinkType(models.TextChoices):
    RELATED = "related", "Related"
    CONSOLIDATED = "consolidated", "Consolidated"
    SPLIT = "split", "Split"


class ServiceCategory(models.TextChoices):
    PREVENTIVE = "preventive", "Preventive"
    RESTORATIVE = "restorative", "Restorative"
    SURGICAL = "surgical", "Surgical"
    COSMETIC = "cosmetic", "Cosmetic"
    ORTHODONTIC = "orthodontic", "Orthodontic"
    PERIODONTAL = "periodontal", "Periodontal"
    ENDODONTIC = "endodontic", "Endodontic"
    PROSTHETIC = "prosthetic", "Prosthetic"
    PEDIATRIC = "pediatric", "Pediatric"
    EMERGENCY = "emergency", "Emergency"
    CONSULTATION = "consultation", "Consultation"
    OTHER = "other", "Other"


class PaymentMethod(models.TextChoices):
    CASH = "cash", "Cash"
    CHECK = "check", "Check"
    CREDIT_CARD = "credit_card", "Credit Card"
    DEBIT_CARD = "debit_card", "Debit Card"
    BANK_TRANSFER = "bank_transfer", "Bank Transfer"
    INSURANCE = "insurance", "Insurance"
    FINANCING = "financing", "Financing"
    STORE_CREDIT = "store_credit", "Store Credit"
    OTHER = "other", "Other"


class BillingReport(UUIDModel):
    """
    One invoiceable unit of work for an appointment.

    Several reports may bill the same appointment; they are ordered by
    report_sequence (1-based, unique per appointment). Money fields are kept
    consistent by the services layer, never written directly by views.
    """
    appointment_id = models.CharField(max_length=64, db_index=True)
    patient_id = models.CharField(max_length=64, db_index=True)
    doctor_id = models.CharField(max_length=64, db_index=True)

    # Classification
    report_type = models.CharField(max_length=32, choices=ReportType.choices, default=ReportType.COMPLETE_VISIT)
    report_title = models.CharField(max_length=255, blank=True)
    report_description = models.TextField(blank=True)
    is_partial_report = models.BooleanField(default=False)
    report_sequence = models.PositiveIntegerField()

    # Relationships (weak references: a parent outlives its children)
    parent_report = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        related_name="child_reports",
        null=True,
        blank=True,
    )
    link_id = models.UUIDField(null=True, blank=True, db_index=True)
    linked_reports = models.JSONField(default=list, blank=True)
    link_type = models.CharField(max_length=16, choices=LinkType.choices, blank=True)
    link_notes = models.TextField(blank=True)
    linked_by = models.CharField(max_length=64, blank=True)
    linked_at = models.DateTimeField(null=True, blank=True)

    # Financial (base currency, 2 decimals)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    pending_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)

    # Lifecycle
    status = models.CharField(max_length=32, choices=ReportStatus.choices, default=ReportStatus.DRAFT, db_index=True)
    invoice_number = models.CharField(max_length=32, blank=True)  # assigned on completion
    invoice_date = models.DateTimeField(null=True, blank=True)
    due_date = models.DateTimeField(null=True, blank=True, db_index=True)
    pdf_generated = models.BooleanField(default=False)
    pdf_url = models.URLField(max_length=500, blank=True)

    notes = models.TextField(blank=True)
    internal_notes = models.TextField(blank=True)  # staff only

    # Audit
    created_by = models.CharField(max_length=64)
    last_modified_by = models.CharField(max_length=64)

    archived_at = models.DateTimeField(null=True, blank=True)
    archived_by = models.CharField(max_length=64, blank=True)
    archived_reason = models.TextField(blank=True)
    status_before_archive = models.CharField(max_length=32, choices=ReportStatus.choices, blank=True)

    is_deleted = models.BooleanField(default=False, db_index=True)
    deleted_at = models.DateTimeField(null=True, blank=True)
    deleted_by = models.CharField(max_length=64, blank=True)
    delete_reason = models.TextField(blank=True)
    status_before_delete = models.CharField(max_length=32, choices=ReportStatus.choices, blank=True)

    class Meta:
        db_table = "billing_report"
        constraints = [
            models.UniqueConstraint(
                fields=["appointment_id", "report_sequence"],
                name="uq_report_appointment_sequence",
            ),
            models.UniqueConstraint(
                fields=["invoice_number"],
                condition=~Q(invoice_number=""),
                name="uq_report_invoice_number",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "created_at"]),
            models.Index(fields=["patient_id", "created_at"]),
            models.Index(fields=["doctor_id", "created_at"]),
        ]

    def __str__(self) -> str:
        return f"BillingReport({self.appointment_id}#{self.report_sequence}, {self.status})"


class BillingService(models.Model):
    """
    Snapshot service line. `total` is always quantity * unit_price (2 decimals).
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    report = models.ForeignKey(BillingReport, on_delete=models.CASCADE, related_name="services")
    position = models.PositiveIntegerField(default=0)

    description = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("1.00"))
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)

    category = models.CharField(max_length=32, choices=ServiceCategory.choices, default=ServiceCategory.OTHER)
    procedure_code = models.CharField(max_length=32, blank=True)
    tooth = models.JSONField(default=list, blank=True)
    provided_by = models.CharField(max_length=64, blank=True)

    class Meta:
        db_table = "billing_service"
        ordering = ["position"]


class BillingPayment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    report = models.ForeignKey(BillingReport, on_delete=models.CASCADE, related_name="payments")

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=32, choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    reference = models.CharField(max_length=128, blank=True)
    notes = models.TextField(blank=True)
    date = models.DateTimeField()
    processed_by = models.CharField(max_length=64)

    verified = models.BooleanField(default=False)
    verified_by = models.CharField(max_length=64, blank=True)
    verified_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "billing_payment"
        ordering = ["date", "id"]
        indexes = [
            models.Index(fields=["report", "date"]),
        ]


class BillingStatusHistory(models.Model):
    """
    Append-only audit entry. Rows are never updated or deleted except when the
    whole report is hard-deleted.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    report = models.ForeignKey(BillingReport, on_delete=models.CASCADE, related_name="status_history")
    position = models.PositiveIntegerField()

    previous_status = models.CharField(max_length=32, choices=ReportStatus.choices, null=True, blank=True)
    new_status = models.CharField(max_length=32, choices=ReportStatus.choices)
    details = models.TextField(blank=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    performed_by = models.CharField(max_length=64)
    performed_at = models.DateTimeField()

    class Meta:
        db_table = "billing_status_history"
        ordering = ["position"]
        constraints = [
            models.UniqueConstraint(fields=["report", "position"], name="uq_history_report_position"),
        ]


class ReportSequenceCounter(TimeStampedModel):
    """
    Per-appointment counter row; locked with select_for_update while allocating.
    """
    appointment_id = models.CharField(max_length=64, unique=True)
    last_sequence = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "billing_report_sequence_counter"


class InvoiceNumberCounter(TimeStampedModel):
    """
    Monotonic invoice counter per (prefix, year). Never decremented, so numbers
    of deleted reports are never handed out again.
    """
    prefix = models.CharField(max_length=16)
    year = models.PositiveIntegerField()
    last_number = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "billing_invoice_number_counter"
        constraints = [
            models.UniqueConstraint(fields=["prefix", "year"], name="uq_invoice_counter_prefix_year"),
        ]
