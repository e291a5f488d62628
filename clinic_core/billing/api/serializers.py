# clinic_core/billing/api/serializers.py
from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from clinic_core.billing.models import (
    BillingPayment,
    BillingReport,
    BillingService,
    BillingStatusHistory,
    LinkType,
    PaymentMethod,
    ReportType,
    ServiceCategory,
)


def _money(**kwargs):
    return serializers.DecimalField(max_digits=14, decimal_places=2, **kwargs)


# -------------------------------------------------------------------
# Read models
# -------------------------------------------------------------------

class BillingServiceSerializer(serializers.ModelSerializer):
    class Meta:
        model = BillingService
        fields = [
            "id",
            "position",
            "description",
            "quantity",
            "unit_price",
            "total",
            "category",
            "procedure_code",
            "tooth",
            "provided_by",
        ]
        read_only_fields = fields


class BillingPaymentSerializer(serializers.ModelSerializer):
    report = serializers.UUIDField(source="report_id", read_only=True)

    class Meta:
        model = BillingPayment
        fields = [
            "id",
            "report",
            "amount",
            "method",
            "reference",
            "notes",
            "date",
            "processed_by",
            "verified",
            "verified_by",
            "verified_at",
        ]
        read_only_fields = fields


class BillingStatusHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = BillingStatusHistory
        fields = [
            "id",
            "position",
            "previous_status",
            "new_status",
            "details",
            "amount",
            "performed_by",
            "performed_at",
        ]
        read_only_fields = fields


REPORT_FIELDS = [
    "id",
    "appointment_id",
    "patient_id",
    "doctor_id",
    "report_type",
    "report_title",
    "report_description",
    "is_partial_report",
    "report_sequence",
    "parent_report",
    "link_id",
    "linked_reports",
    "link_type",
    "link_notes",
    "linked_by",
    "linked_at",
    "subtotal",
    "tax",
    "discount",
    "total",
    "paid_amount",
    "pending_amount",
    "status",
    "invoice_number",
    "invoice_date",
    "due_date",
    "pdf_generated",
    "pdf_url",
    "notes",
    "created_by",
    "last_modified_by",
    "archived_at",
    "archived_by",
    "archived_reason",
    "is_deleted",
    "deleted_at",
    "deleted_by",
    "delete_reason",
    "created_at",
    "updated_at",
]


class BillingReportListSerializer(serializers.ModelSerializer):
    parent_report = serializers.UUIDField(source="parent_report_id", read_only=True, allow_null=True)

    class Meta:
        model = BillingReport
        fields = REPORT_FIELDS
        read_only_fields = fields


class BillingReportSerializer(serializers.ModelSerializer):
    parent_report = serializers.UUIDField(source="parent_report_id", read_only=True, allow_null=True)
    services = BillingServiceSerializer(many=True, read_only=True)
    payments = BillingPaymentSerializer(many=True, read_only=True)
    status_history = BillingStatusHistorySerializer(many=True, read_only=True)

    class Meta:
        model = BillingReport
        fields = REPORT_FIELDS + ["internal_notes", "services", "payments", "status_history"]
        read_only_fields = fields


# -------------------------------------------------------------------
# Write payloads
# -------------------------------------------------------------------

class ServiceLineInputSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=255)
    quantity = serializers.DecimalField(max_digits=10, decimal_places=2, default=Decimal("1.00"))
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    category = serializers.ChoiceField(choices=ServiceCategory.choices, default=ServiceCategory.OTHER)
    procedure_code = serializers.CharField(required=False, allow_blank=True, default="")
    tooth = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    provided_by = serializers.CharField(required=False, allow_blank=True, default="")


class ReportCreateSerializer(serializers.Serializer):
    appointment_id = serializers.CharField(max_length=64)
    report_type = serializers.ChoiceField(choices=ReportType.choices, default=ReportType.COMPLETE_VISIT)
    report_title = serializers.CharField(required=False, allow_blank=True, default="")
    report_description = serializers.CharField(required=False, allow_blank=True, default="")
    is_partial_report = serializers.BooleanField(required=False, default=False)
    parent_report_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    include_previous_services = serializers.BooleanField(required=False, default=False)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=Decimal("0.00"))
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    services = ServiceLineInputSerializer(many=True, required=False, default=list)


class ServicesUpdateSerializer(serializers.Serializer):
    services = ServiceLineInputSerializer(many=True)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True, default=None)


class DiscountSerializer(serializers.Serializer):
    discount = serializers.DecimalField(max_digits=12, decimal_places=2)


class CompleteSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class NotesSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    internal_notes = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)


class PdfSerializer(serializers.Serializer):
    pdf_url = serializers.URLField(max_length=500)


class PaymentCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    method = serializers.ChoiceField(choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    reference = serializers.CharField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    date = serializers.DateTimeField(required=False, allow_null=True, default=None)
    payment_id = serializers.UUIDField(required=False, allow_null=True, default=None)


class DuplicateSerializer(serializers.Serializer):
    include_services = serializers.BooleanField(required=False, default=False)
    include_payments = serializers.BooleanField(required=False, default=False)
    report_type = serializers.ChoiceField(choices=ReportType.choices, required=False, allow_null=True, default=None)
    report_title = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    report_description = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)


class LinkSerializer(serializers.Serializer):
    report_ids = serializers.ListField(child=serializers.UUIDField(), min_length=2)
    link_type = serializers.ChoiceField(choices=LinkType.choices, default=LinkType.RELATED)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


# -------------------------------------------------------------------
# Aggregates
# -------------------------------------------------------------------

class QuickPaymentOptionSerializer(serializers.Serializer):
    key = serializers.CharField()
    label = serializers.CharField()
    amount = _money()


class AppointmentBillingSummarySerializer(serializers.Serializer):
    appointment_id = serializers.CharField()
    total_amount = _money()
    total_paid = _money()
    total_pending = _money()
    has_draft_reports = serializers.BooleanField()
    has_completed_reports = serializers.BooleanField()
    report_types = serializers.ListField(child=serializers.CharField())
    report_count = serializers.IntegerField()


class PeriodSerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()


class PaymentMethodBreakdownSerializer(serializers.Serializer):
    method = serializers.CharField()
    count = serializers.IntegerField()
    amount = _money()
    percentage = _money()


class ServiceCategoryBreakdownSerializer(serializers.Serializer):
    category = serializers.CharField()
    count = _money()
    revenue = _money()
    average_price = _money()


class MonthlyTrendSerializer(serializers.Serializer):
    month = serializers.CharField()
    revenue = _money()
    expenses = _money()
    net_income = _money()
    report_count = serializers.IntegerField()


class BillingDashboardSerializer(serializers.Serializer):
    period = PeriodSerializer()
    total_revenue = _money()
    paid_revenue = _money()
    pending_revenue = _money()
    overdue_revenue = _money()
    total_expenses = _money()
    approved_expenses = _money()
    pending_expenses = _money()
    net_income = _money()
    gross_margin = _money()
    total_reports = serializers.IntegerField()
    completed_reports = serializers.IntegerField()
    draft_reports = serializers.IntegerField()
    overdue_reports = serializers.IntegerField()
    payment_method_breakdown = PaymentMethodBreakdownSerializer(many=True)
    service_category_breakdown = ServiceCategoryBreakdownSerializer(many=True)
    monthly_trends = MonthlyTrendSerializer(many=True)


class RevenueSummarySerializer(serializers.Serializer):
    today = _money()
    this_week = _money()
    this_month = _money()
    this_year = _money()
