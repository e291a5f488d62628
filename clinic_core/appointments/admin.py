from django.contrib import admin

from clinic_core.appointments.models import Appointment


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ("id", "patient_id", "doctor_id", "scheduled_at", "status", "created_at")
    list_filter = ("status", "doctor_id")
    search_fields = ("id", "patient_id", "doctor_id", "reason")
    readonly_fields = ("created_at", "updated_at")
