# clinic_core/appointments/selectors.py
from __future__ import annotations

from django.core.exceptions import ValidationError as DjangoValidationError

from clinic_core.appointments.models import Appointment


def get_appointment(*, appointment_id) -> Appointment | None:
    try:
        return Appointment.objects.filter(id=appointment_id).first()
    except (ValueError, DjangoValidationError):
        # malformed id can never match a row
        return None
