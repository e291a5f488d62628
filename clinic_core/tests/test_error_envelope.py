from decimal import Decimal

from django.http import Http404
from django.test import RequestFactory
from rest_framework.exceptions import PermissionDenied

from clinic_core.common.api.exceptions import (
    ConcurrencyError,
    InvalidStateError,
    OverpaymentError,
    PersistenceError,
    ValidationError,
    api_exception_handler,
)


def _handle(exc):
    request = RequestFactory().post("/api/v1/billing/reports/")
    return api_exception_handler(exc, {"request": request})


def test_validation_error_keeps_field_details():
    resp = _handle(ValidationError({"amount": "Payment amount must be > 0."}))

    assert resp.status_code == 400
    err = resp.data["error"]
    assert err["code"] == "validation_error"
    assert err["message"] == "Request failed."
    assert "amount" in err["details"]
    assert err["retryable"] is False
    assert err["request_id"]


def test_invalid_state_exposes_current_status():
    resp = _handle(InvalidStateError("Only draft reports can be completed.", current_status="paid"))

    assert resp.status_code == 409
    err = resp.data["error"]
    assert err["code"] == "invalid_state"
    assert err["message"] == "Only draft reports can be completed."
    assert err["details"] == {"current_status": "paid"}


def test_overpayment_exposes_amounts_as_strings():
    resp = _handle(
        OverpaymentError(
            "Payment exceeds the pending balance.",
            pending_amount=Decimal("100.00"),
            attempted_amount=Decimal("100.01"),
        )
    )

    assert resp.status_code == 422
    assert resp.data["error"]["code"] == "overpayment"
    assert resp.data["error"]["details"] == {"pending_amount": "100.00", "attempted_amount": "100.01"}


def test_contention_errors_are_retryable():
    conflict = _handle(ConcurrencyError())
    unavailable = _handle(PersistenceError())

    assert conflict.status_code == 409
    assert conflict.data["error"]["code"] == "concurrency_conflict"
    assert conflict.data["error"]["retryable"] is True
    assert unavailable.status_code == 503
    assert unavailable.data["error"]["code"] == "persistence_error"
    assert unavailable.data["error"]["retryable"] is True


def test_framework_errors_are_wrapped():
    assert _handle(Http404()).data["error"]["code"] == "not_found"
    assert _handle(PermissionDenied()).data["error"]["code"] == "permission_denied"


def test_unhandled_error_becomes_server_error():
    resp = _handle(RuntimeError("boom"))

    assert resp.status_code == 500
    assert resp.data["error"]["code"] == "server_error"
    assert resp.data["error"]["message"] == "Unexpected server error."


def test_request_id_is_reused_from_request():
    request = RequestFactory().get("/")
    request.request_id = "req-123"

    resp = api_exception_handler(InvalidStateError(), {"request": request})

    assert resp.data["error"]["request_id"] == "req-123"
