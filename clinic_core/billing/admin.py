# clinic_core/billing/admin.py
from __future__ import annotations

from django.contrib import admin

from clinic_core.billing.models import BillingPayment, BillingReport, BillingService, BillingStatusHistory


class BillingServiceInline(admin.TabularInline):
    model = BillingService
    extra = 0
    fields = ("position", "description", "quantity", "unit_price", "total", "category", "procedure_code")
    readonly_fields = fields
    can_delete = False


class BillingPaymentInline(admin.TabularInline):
    model = BillingPayment
    extra = 0
    fields = ("date", "amount", "method", "reference", "processed_by", "verified")
    readonly_fields = fields
    can_delete = False


class BillingStatusHistoryInline(admin.TabularInline):
    model = BillingStatusHistory
    extra = 0
    fields = ("position", "previous_status", "new_status", "details", "amount", "performed_by", "performed_at")
    readonly_fields = fields
    can_delete = False


@admin.register(BillingReport)
class BillingReportAdmin(admin.ModelAdmin):
    """
    Read-mostly: totals, status and history are owned by the billing services.
    """
    list_display = (
        "id",
        "appointment_id",
        "report_sequence",
        "report_type",
        "status",
        "invoice_number",
        "total",
        "paid_amount",
        "pending_amount",
        "is_deleted",
        "created_at",
    )
    list_filter = ("status", "report_type", "is_deleted", "created_at")
    search_fields = ("id", "appointment_id", "patient_id", "doctor_id", "invoice_number")
    readonly_fields = (
        "subtotal",
        "tax",
        "discount",
        "total",
        "paid_amount",
        "pending_amount",
        "status",
        "invoice_number",
        "report_sequence",
        "created_at",
        "updated_at",
    )
    inlines = [BillingServiceInline, BillingPaymentInline, BillingStatusHistoryInline]
    ordering = ("-created_at",)
