# clinic_core/appointments/models.py
from django.db import models

from clinic_core.common.models import UUIDModel


class AppointmentStatus(models.TextChoices):
    SCHEDULED = "scheduled", "Scheduled"
    CONFIRMED = "confirmed", "Confirmed"
    IN_PROGRESS = "in_progress", "In Progress"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    NO_SHOW = "no_show", "No Show"


class Appointment(UUIDModel):
    """
    Clinical visit as seen by billing: who was treated, by whom, when.
    Scheduling lives elsewhere; this table is a read-only lookup for reports.
    """
    patient_id = models.CharField(max_length=64, db_index=True)
    doctor_id = models.CharField(max_length=64, db_index=True)

    scheduled_at = models.DateTimeField(null=True, blank=True)
    status = models.CharField(
        max_length=32,
        choices=AppointmentStatus.choices,
        default=AppointmentStatus.SCHEDULED,
        db_index=True,
    )
    reason = models.CharField(max_length=255, blank=True)

    class Meta:
        db_table = "appointments_appointment"
        indexes = [
            models.Index(fields=["doctor_id", "scheduled_at"]),
        ]

    def __str__(self) -> str:
        return f"Appointment({self.patient_id}, {self.scheduled_at})"
