# clinic_core/expenses/services.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from clinic_core.billing.calculator import to_money
from clinic_core.common.api.exceptions import InvalidStateError, NotFoundError, ValidationError
from clinic_core.expenses.models import Expense, ExpenseCategory, ExpenseStatus

logger = logging.getLogger(__name__)

S = ExpenseStatus

ALLOWED_STATUS_CHANGES: dict[str, frozenset[str]] = {
    S.PENDING: frozenset({S.APPROVED, S.REJECTED}),
    S.APPROVED: frozenset({S.PAID, S.REJECTED}),
    S.REJECTED: frozenset({S.PENDING}),
    S.PAID: frozenset(),
}


class ExpenseService:
    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or timezone.now

    @staticmethod
    def _get_locked(expense_id: Any) -> Expense:
        try:
            return Expense.objects.select_for_update().get(id=expense_id)
        except (Expense.DoesNotExist, ValueError, DjangoValidationError):
            raise NotFoundError(f"Expense {expense_id} not found.")

    @transaction.atomic
    def add_expense(
        self,
        *,
        description: str,
        amount: Any,
        category: str,
        submitted_by: str,
        date: datetime | None = None,
        vendor: str = "",
        receipt_number: str = "",
        receipt_url: str = "",
        deductible: bool = False,
        tax_amount: Any = "0.00",
        notes: str = "",
    ) -> Expense:
        if not str(submitted_by or "").strip():
            raise ValidationError({"submitted_by": "An actor id is required."})
        if not str(description or "").strip():
            raise ValidationError({"description": "Description is required."})
        if category not in ExpenseCategory.values:
            raise ValidationError({"category": f"Unknown expense category '{category}'."})

        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError({"amount": "Expense amount must be > 0."})
        tax = to_money(tax_amount, field="tax_amount")
        if tax < 0:
            raise ValidationError({"tax_amount": "Tax amount must be >= 0."})

        expense = Expense.objects.create(
            description=description.strip(),
            amount=amount,
            category=category,
            date=date or self._clock(),
            vendor=vendor or "",
            receipt_number=receipt_number or "",
            receipt_url=receipt_url or "",
            deductible=bool(deductible),
            tax_amount=tax,
            status=ExpenseStatus.PENDING,
            submitted_by=submitted_by,
            notes=notes or "",
        )
        logger.info("Expense %s (%s %s) submitted by %s", expense.id, category, amount, submitted_by)
        return expense

    @transaction.atomic
    def update_status(
        self,
        *,
        expense_id: Any,
        status: str,
        approved_by: str,
        notes: str | None = None,
    ) -> Expense:
        if not str(approved_by or "").strip():
            raise ValidationError({"approved_by": "An actor id is required."})
        if status not in ExpenseStatus.values:
            raise ValidationError({"status": f"Unknown expense status '{status}'."})

        expense = self._get_locked(expense_id)
        if status not in ALLOWED_STATUS_CHANGES.get(expense.status, frozenset()):
            raise InvalidStateError(
                f"Expense cannot move from '{expense.status}' to '{status}'.",
                current_status=expense.status,
            )

        previous = expense.status
        expense.status = status
        if status == ExpenseStatus.APPROVED:
            expense.approved_by = approved_by
            expense.approved_at = self._clock()
        if notes:
            expense.notes = notes
        expense.save(update_fields=["status", "approved_by", "approved_at", "notes", "updated_at"])

        logger.info("Expense %s %s -> %s by %s", expense.id, previous, status, approved_by)
        return expense

    @transaction.atomic
    def delete_expense(self, *, expense_id: Any) -> None:
        expense = self._get_locked(expense_id)
        logger.info("Deleting expense %s (%s)", expense.id, expense.status)
        expense.delete()
