# clinic_core/common/api/exceptions.py

from __future__ import annotations

import logging
import uuid
from typing import Any

from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import APIException, NotAuthenticated, PermissionDenied
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


def ensure_request_id(request) -> str:
    """
    Ensures request has a stable request_id attribute and returns it.
    Safe to call from middleware and DRF exception handler.
    """
    rid = getattr(request, "request_id", None) if request is not None else None
    if not rid:
        rid = uuid.uuid4().hex
        if request is not None:
            setattr(request, "request_id", rid)
    return rid


def build_error_envelope(
    *,
    request=None,
    code: str,
    message: str,
    details: Any = None,
    retryable: bool = False,
) -> dict[str, Any]:
    """
    Canonical error envelope for the clinic API.
    `retryable` tells clients whether resubmitting the same request may succeed.
    """
    rid = ensure_request_id(request)
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "request_id": rid,
            "retryable": retryable,
        }
    }


# -------------------------------------------------------------------
# Domain errors
# -------------------------------------------------------------------

class NotFoundError(APIException):
    """Report, appointment, parent or expense is missing."""
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"
    retryable = False


class InvalidStateError(APIException):
    """
    409 Conflict for operations the current status does not permit
    (editing a completed report, paying a draft, completing twice...).
    """
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Operation not allowed in the current status."
    default_code = "invalid_state"
    retryable = False

    def __init__(self, detail=None, code=None, *, current_status: str | None = None):
        super().__init__(detail=detail or self.default_detail, code=code or self.default_code)
        self.current_status = current_status


class ValidationError(DRFValidationError):
    """Bad amounts, malformed service lines, missing actor ids."""
    default_code = "validation_error"
    retryable = False


class OverpaymentError(APIException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Payment exceeds the pending balance."
    default_code = "overpayment"
    retryable = False

    def __init__(self, detail=None, code=None, *, pending_amount=None, attempted_amount=None):
        super().__init__(detail=detail or self.default_detail, code=code or self.default_code)
        self.pending_amount = pending_amount
        self.attempted_amount = attempted_amount


class ConcurrencyError(APIException):
    """Sequence, link-batch or payment-id collision. Safe to retry."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Concurrent modification detected. Please retry."
    default_code = "concurrency_conflict"
    retryable = True


class PersistenceError(APIException):
    """Underlying store failure. Safe to retry with backoff."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Storage temporarily unavailable."
    default_code = "persistence_error"
    retryable = True


def _code_for(exc: Exception, http_status: int) -> str:
    if isinstance(exc, DRFValidationError):
        return "validation_error"
    if isinstance(exc, NotAuthenticated):
        return "not_authenticated"
    if isinstance(exc, PermissionDenied):
        return "permission_denied"
    if isinstance(exc, Http404):
        return "not_found"
    if isinstance(exc, APIException):
        return getattr(exc, "default_code", "api_error") or "api_error"
    if http_status >= 500:
        return "server_error"
    return "error"


def _extra_details(exc: Exception) -> dict[str, Any]:
    if isinstance(exc, OverpaymentError):
        return {
            "pending_amount": None if exc.pending_amount is None else str(exc.pending_amount),
            "attempted_amount": None if exc.attempted_amount is None else str(exc.attempted_amount),
        }
    if isinstance(exc, InvalidStateError) and exc.current_status:
        return {"current_status": exc.current_status}
    return {}


def api_exception_handler(exc: Exception, context: dict[str, Any]):
    request = context.get("request")
    response = drf_exception_handler(exc, context)

    # Truly unhandled error
    if response is None:
        logger.exception("Unhandled API error", exc_info=exc)
        return Response(
            build_error_envelope(
                request=request,
                code="server_error",
                message="Unexpected server error.",
                details=None,
            ),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    http_status = response.status_code
    code = _code_for(exc, http_status)

    # DRF standardizes errors into response.data
    data = response.data

    # 1) {"detail": "..."} -> message=detail, details=None
    # 2) {"detail": "...", ...} -> message=detail, details={...without detail}
    # 3) otherwise -> message="Request failed.", details=data
    message = "Request failed."
    details = data

    if isinstance(data, dict) and "detail" in data:
        message = str(data.get("detail"))
        rest = {k: v for k, v in data.items() if k != "detail"}
        details = rest or None

    extra = _extra_details(exc)
    if extra:
        details = {**(details if isinstance(details, dict) else {}), **extra}

    return Response(
        build_error_envelope(
            request=request,
            code=code,
            message=message,
            details=details,
            retryable=bool(getattr(exc, "retryable", False)),
        ),
        status=http_status,
        headers=response.headers,
    )
