# clinic_core/expenses/tests/test_expense_api.py
from datetime import datetime, timezone as dt_timezone

import pytest

from clinic_core.expenses.models import ExpenseCategory, ExpenseStatus
from clinic_core.expenses.services import ExpenseService

EXPENSES = "/api/v1/expenses/"


@pytest.fixture
def seeded_expenses(db):
    svc = ExpenseService()
    rent = svc.add_expense(
        description="Renta marzo",
        amount="12000",
        category=ExpenseCategory.RENT,
        submitted_by="staff-1",
        date=datetime(2026, 3, 1, 12, 0, tzinfo=dt_timezone.utc),
    )
    svc.update_status(expense_id=rent.id, status=ExpenseStatus.APPROVED, approved_by="admin-1")
    svc.add_expense(
        description="Guantes de nitrilo",
        amount="850",
        category=ExpenseCategory.DENTAL_SUPPLIES,
        submitted_by="staff-2",
        vendor="Dental Express",
        date=datetime(2026, 3, 5, 12, 0, tzinfo=dt_timezone.utc),
    )
    svc.add_expense(
        description="Renta febrero",
        amount="12000",
        category=ExpenseCategory.RENT,
        submitted_by="staff-1",
        date=datetime(2026, 2, 1, 12, 0, tzinfo=dt_timezone.utc),
    )


@pytest.mark.django_db
def test_create_and_retrieve_expense(api_client, user):
    resp = api_client.post(
        EXPENSES,
        {"description": "Mantenimiento autoclave", "amount": "2300.00", "category": "maintenance", "deductible": True},
        format="json",
    )

    assert resp.status_code == 201
    assert resp.data["status"] == "pending"
    assert resp.data["amount"] == "2300.00"
    assert resp.data["submitted_by"] == str(user.pk)

    resp = api_client.get(f"{EXPENSES}{resp.data['id']}/")
    assert resp.status_code == 200
    assert resp.data["description"] == "Mantenimiento autoclave"


@pytest.mark.django_db
def test_create_rejects_bad_payload(api_client):
    resp = api_client.post(EXPENSES, {"description": "X", "amount": "0", "category": "rent"}, format="json")
    assert resp.status_code == 400
    assert resp.data["error"]["code"] == "validation_error"

    resp = api_client.post(EXPENSES, {"description": "X", "amount": "10", "category": "yachts"}, format="json")
    assert resp.status_code == 400


@pytest.mark.django_db
def test_list_filters(api_client, seeded_expenses):
    resp = api_client.get(EXPENSES)
    assert resp.status_code == 200
    assert resp.data["count"] == 3
    # newest first
    assert [e["description"] for e in resp.data["results"]] == ["Guantes de nitrilo", "Renta marzo", "Renta febrero"]

    resp = api_client.get(EXPENSES, {"category": "rent"})
    assert resp.data["count"] == 2

    resp = api_client.get(EXPENSES, {"status": "approved"})
    assert [e["description"] for e in resp.data["results"]] == ["Renta marzo"]

    resp = api_client.get(EXPENSES, {"start": "2026-03-01T00:00:00Z", "end": "2026-03-31T23:59:59Z"})
    assert resp.data["count"] == 2

    resp = api_client.get(EXPENSES, {"search": "nitrilo"})
    assert resp.data["count"] == 1


@pytest.mark.django_db
def test_status_endpoint(api_client, seeded_expenses):
    pending = api_client.get(EXPENSES, {"status": "pending", "category": "dental_supplies"}).data["results"][0]

    resp = api_client.post(f"{EXPENSES}{pending['id']}/status/", {"status": "approved"}, format="json")
    assert resp.status_code == 200
    assert resp.data["status"] == "approved"
    assert resp.data["approved_at"] is not None

    resp = api_client.post(f"{EXPENSES}{pending['id']}/status/", {"status": "pending"}, format="json")
    assert resp.status_code == 409
    assert resp.data["error"]["code"] == "invalid_state"
    assert resp.data["error"]["details"]["current_status"] == "approved"


@pytest.mark.django_db
def test_delete_expense(api_client, seeded_expenses):
    target = api_client.get(EXPENSES, {"category": "dental_supplies"}).data["results"][0]

    assert api_client.delete(f"{EXPENSES}{target['id']}/").status_code == 204
    assert api_client.get(f"{EXPENSES}{target['id']}/").status_code == 404
    assert api_client.delete(f"{EXPENSES}{target['id']}/").status_code == 404


@pytest.mark.django_db
def test_readonly_user_cannot_submit(readonly_client):
    resp = readonly_client.post(EXPENSES, {"description": "X", "amount": "10", "category": "rent"}, format="json")

    assert resp.status_code == 403
