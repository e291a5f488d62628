# clinic_core/conftest.py
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from rest_framework.test import APIClient

from clinic_core.appointments.models import Appointment, AppointmentStatus
from clinic_core.billing.archival import ReportArchivalService
from clinic_core.billing.relationships import ReportRelationshipService
from clinic_core.billing.services import BillingReportService


class FakeClock:
    """
    Deterministic, manually advanced clock for the billing services.
    """

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 10, 16, 0, tzinfo=dt_timezone.utc))


@pytest.fixture
def actor():
    return "staff-billing-1"


@pytest.fixture
def appointment(db):
    return Appointment.objects.create(
        patient_id="patient-001",
        doctor_id="doctor-001",
        scheduled_at=datetime(2026, 3, 10, 15, 0, tzinfo=dt_timezone.utc),
        status=AppointmentStatus.COMPLETED,
        reason="Limpieza y revisión",
    )


@pytest.fixture
def report_service(clock):
    return BillingReportService(clock=clock)


@pytest.fixture
def relationship_service(clock):
    return ReportRelationshipService(clock=clock)


@pytest.fixture
def archival_service(clock):
    return ReportArchivalService(clock=clock)


def service_line(description="Consulta", quantity="1", unit_price="1000.00", category="consultation", **extra):
    return {
        "description": description,
        "quantity": Decimal(str(quantity)),
        "unit_price": Decimal(str(unit_price)),
        "category": category,
        **extra,
    }


@pytest.fixture
def make_report(report_service, appointment, actor):
    """
    Factory: create a report (optionally completed) and return the fresh row.
    """

    def _make(services=None, *, complete=False, appointment_id=None, options=None):
        report_id = report_service.create_report(
            appointment_id=appointment_id or str(appointment.id),
            created_by=actor,
            options=options,
            initial_services=[service_line()] if services is None else services,
        )
        if complete:
            report_service.complete_report(report_id=report_id, performed_by=actor)
        return report_service.get_report(report_id)

    return _make


@pytest.fixture
def user(db):
    User = get_user_model()
    user = User.objects.create_user(username="billing", password="testpass", is_active=True)
    group, _ = Group.objects.get_or_create(name="BILLING")
    user.groups.add(group)
    return user


@pytest.fixture
def readonly_user(db):
    User = get_user_model()
    return User.objects.create_user(username="viewer", password="testpass", is_active=True)


@pytest.fixture
def api_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def readonly_client(readonly_user):
    client = APIClient()
    client.force_authenticate(user=readonly_user)
    return client
