# clinic_core/expenses/models.py
from __future__ import annotations

from decimal import Decimal

from django.db import models

from clinic_core.common.models import UUIDModel


class ExpenseCategory(models.TextChoices):
    OFFICE_SUPPLIES = "office_supplies", "Office Supplies"
    DENTAL_SUPPLIES = "dental_supplies", "Dental Supplies"
    EQUIPMENT = "equipment", "Equipment"
    LABORATORY = "laboratory", "Laboratory"
    UTILITIES = "utilities", "Utilities"
    RENT = "rent", "Rent"
    MARKETING = "marketing", "Marketing"
    CONTINUING_EDUCATION = "continuing_education", "Continuing Education"
    INSURANCE = "insurance", "Insurance"
    PROFESSIONAL_SERVICES = "professional_services", "Professional Services"
    TRAVEL = "travel", "Travel"
    MEALS = "meals", "Meals"
    SOFTWARE = "software", "Software"
    MAINTENANCE = "maintenance", "Maintenance"
    TAXES = "taxes", "Taxes"
    OTHER = "other", "Other"


class ExpenseStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    PAID = "paid", "Paid"


class Expense(UUIDModel):
    """
    Clinic expense with a light approval workflow.
    Approved and paid expenses count against revenue in the billing dashboard.
    """
    description = models.CharField(max_length=255)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    category = models.CharField(max_length=32, choices=ExpenseCategory.choices, default=ExpenseCategory.OTHER)
    date = models.DateTimeField(db_index=True)

    vendor = models.CharField(max_length=255, blank=True)
    receipt_number = models.CharField(max_length=64, blank=True)
    receipt_url = models.URLField(max_length=500, blank=True)

    deductible = models.BooleanField(default=False)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    status = models.CharField(max_length=16, choices=ExpenseStatus.choices, default=ExpenseStatus.PENDING, db_index=True)
    approved_by = models.CharField(max_length=64, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)

    submitted_by = models.CharField(max_length=64)
    notes = models.TextField(blank=True)

    class Meta:
        db_table = "expenses_expense"
        ordering = ["-date"]
        indexes = [
            models.Index(fields=["category", "date"]),
            models.Index(fields=["status", "date"]),
        ]

    def __str__(self) -> str:
        return f"Expense({self.description}, {self.amount}, {self.status})"
