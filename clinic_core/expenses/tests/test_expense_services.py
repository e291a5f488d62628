# clinic_core/expenses/tests/test_expense_services.py
from decimal import Decimal

import pytest

from clinic_core.common.api.exceptions import InvalidStateError, NotFoundError, ValidationError
from clinic_core.expenses.models import Expense, ExpenseCategory, ExpenseStatus
from clinic_core.expenses.services import ExpenseService


@pytest.fixture
def expense_service(clock):
    return ExpenseService(clock=clock)


@pytest.fixture
def expense(db, expense_service):
    return expense_service.add_expense(
        description="Resina compuesta A2",
        amount="1450.50",
        category=ExpenseCategory.DENTAL_SUPPLIES,
        submitted_by="staff-1",
        vendor="Depósito Dental del Centro",
        deductible=True,
        tax_amount="232.08",
    )


@pytest.mark.django_db
def test_add_expense_starts_pending(expense, clock):
    assert expense.status == ExpenseStatus.PENDING
    assert expense.amount == Decimal("1450.50")
    assert expense.tax_amount == Decimal("232.08")
    assert expense.date == clock()
    assert expense.deductible is True
    assert expense.approved_by == ""


@pytest.mark.django_db
@pytest.mark.parametrize(
    "overrides",
    [
        {"amount": "0"},
        {"amount": "-10"},
        {"description": "   "},
        {"category": "yachts"},
        {"submitted_by": ""},
        {"tax_amount": "-1"},
    ],
)
def test_invalid_expenses_are_rejected(expense_service, overrides):
    kwargs = {
        "description": "Papelería",
        "amount": "120",
        "category": ExpenseCategory.OFFICE_SUPPLIES,
        "submitted_by": "staff-1",
        **overrides,
    }

    with pytest.raises(ValidationError):
        expense_service.add_expense(**kwargs)

    assert Expense.objects.count() == 0


@pytest.mark.django_db
def test_approve_then_pay(expense, expense_service, clock):
    clock.advance(hours=2)

    approved = expense_service.update_status(expense_id=expense.id, status=ExpenseStatus.APPROVED, approved_by="admin-1")
    assert approved.status == ExpenseStatus.APPROVED
    assert approved.approved_by == "admin-1"
    assert approved.approved_at == clock()

    paid = expense_service.update_status(
        expense_id=expense.id,
        status=ExpenseStatus.PAID,
        approved_by="admin-2",
        notes="Transferencia 0042",
    )
    assert paid.status == ExpenseStatus.PAID
    assert paid.approved_by == "admin-1"
    assert paid.notes == "Transferencia 0042"


@pytest.mark.django_db
def test_rejected_expense_can_be_resubmitted(expense, expense_service):
    expense_service.update_status(expense_id=expense.id, status=ExpenseStatus.REJECTED, approved_by="admin-1")

    again = expense_service.update_status(expense_id=expense.id, status=ExpenseStatus.PENDING, approved_by="staff-1")

    assert again.status == ExpenseStatus.PENDING


@pytest.mark.django_db
@pytest.mark.parametrize(
    "path",
    [
        [ExpenseStatus.PAID],
        [ExpenseStatus.APPROVED, ExpenseStatus.PENDING],
        [ExpenseStatus.APPROVED, ExpenseStatus.PAID, ExpenseStatus.REJECTED],
    ],
)
def test_disallowed_status_changes(expense, expense_service, path):
    *allowed, last = path
    for status in allowed:
        expense_service.update_status(expense_id=expense.id, status=status, approved_by="admin-1")

    with pytest.raises(InvalidStateError):
        expense_service.update_status(expense_id=expense.id, status=last, approved_by="admin-1")


@pytest.mark.django_db
def test_unknown_status_and_missing_actor(expense, expense_service):
    with pytest.raises(ValidationError):
        expense_service.update_status(expense_id=expense.id, status="lost", approved_by="admin-1")
    with pytest.raises(ValidationError):
        expense_service.update_status(expense_id=expense.id, status=ExpenseStatus.APPROVED, approved_by="")


@pytest.mark.django_db
def test_delete_expense(expense, expense_service):
    expense_service.delete_expense(expense_id=expense.id)

    assert not Expense.objects.filter(id=expense.id).exists()
    with pytest.raises(NotFoundError):
        expense_service.delete_expense(expense_id=expense.id)
