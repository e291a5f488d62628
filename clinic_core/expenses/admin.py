from django.contrib import admin

from clinic_core.expenses.models import Expense


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    list_display = ("id", "date", "description", "category", "amount", "status", "submitted_by", "approved_by")
    list_filter = ("status", "category", "deductible", "date")
    search_fields = ("id", "description", "vendor", "receipt_number", "submitted_by")
    readonly_fields = ("created_at", "updated_at", "approved_at")
    ordering = ("-date",)
