# clinic_core/billing/sequences.py
"""
Counters for billing reports.

Both allocators must run inside the caller's transaction.atomic block: the
counter row stays locked (select_for_update) until the caller commits, so two
concurrent report creations for the same appointment serialize on that row.
"""
from __future__ import annotations

import logging
from datetime import datetime

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Max
from django.utils import timezone

from clinic_core.billing.models import BillingReport, InvoiceNumberCounter, ReportSequenceCounter
from clinic_core.common.api.exceptions import ConcurrencyError, PersistenceError

logger = logging.getLogger(__name__)


def allocate_report_sequence(*, appointment_id: str) -> int:
    """
    Next report_sequence for an appointment: max(counter, existing max) + 1.

    Lookup failures surface as PersistenceError / ConcurrencyError (both
    retryable); no weaker value is ever substituted.
    """
    try:
        with transaction.atomic():
            counter, _ = ReportSequenceCounter.objects.select_for_update().get_or_create(
                appointment_id=appointment_id,
            )
            existing_max = (
                BillingReport.objects.filter(appointment_id=appointment_id)
                .aggregate(m=Max("report_sequence"))
                .get("m")
                or 0
            )
            next_sequence = max(counter.last_sequence, existing_max) + 1

            counter.last_sequence = next_sequence
            counter.save(update_fields=["last_sequence", "updated_at"])
    except IntegrityError as exc:
        raise ConcurrencyError(f"Sequence collision for appointment {appointment_id}.") from exc
    except DatabaseError as exc:
        logger.exception("Sequence lookup failed for appointment %s", appointment_id)
        raise PersistenceError("Could not allocate report sequence.") from exc

    return next_sequence


def next_invoice_number(*, now: datetime) -> str:
    """
    Human-readable, monotonic invoice number, e.g. FAC-2026-000042.
    The counter is never decremented, so numbers are never reused.
    """
    prefix = str(settings.BILLING.get("INVOICE_NUMBER_PREFIX", "FAC-"))
    year = timezone.localtime(now).year

    try:
        with transaction.atomic():
            counter, _ = InvoiceNumberCounter.objects.select_for_update().get_or_create(
                prefix=prefix,
                year=year,
            )
            counter.last_number += 1
            counter.save(update_fields=["last_number", "updated_at"])
    except IntegrityError as exc:
        raise ConcurrencyError("Invoice number collision.") from exc
    except DatabaseError as exc:
        logger.exception("Invoice counter update failed")
        raise PersistenceError("Could not allocate invoice number.") from exc

    return f"{prefix}{year}-{counter.last_number:06d}"
