# clinic_core/billing/integrations.py
"""
Collaborators consumed by billing, kept behind small interfaces so tests and
other deployments can swap them.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from clinic_core.appointments.selectors import get_appointment


@dataclass(frozen=True)
class AppointmentInfo:
    appointment_id: str
    patient_id: str
    doctor_id: str


class AppointmentLookup(Protocol):
    def get_appointment(self, appointment_id: str) -> Optional[AppointmentInfo]:
        ...


class ModelAppointmentLookup:
    """
    Default lookup backed by the local appointments table.
    """

    def get_appointment(self, appointment_id: str) -> Optional[AppointmentInfo]:
        appt = get_appointment(appointment_id=appointment_id)
        if appt is None:
            return None
        return AppointmentInfo(
            appointment_id=str(appt.id),
            patient_id=appt.patient_id,
            doctor_id=appt.doctor_id,
        )
