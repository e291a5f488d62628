# clinic_core/billing/tests/test_relationships.py
import uuid
from decimal import Decimal

import pytest

from clinic_core.billing.models import BillingReport, LinkType, ReportStatus, ReportType
from clinic_core.billing.relationships import DuplicateOptions
from clinic_core.billing.services import PaymentInput
from clinic_core.common.api.exceptions import InvalidStateError, NotFoundError, ValidationError
from clinic_core.conftest import service_line


def _reload(report_id):
    return BillingReport.objects.get(id=report_id)


@pytest.mark.django_db
def test_duplicate_copies_services_as_partial_child(make_report, relationship_service, actor):
    source = make_report(
        [
            service_line("Endodoncia", unit_price="4500", category="endodontic"),
            service_line("Radiografía", quantity="2", unit_price="250"),
        ],
        complete=True,
    )

    dup = _reload(
        relationship_service.duplicate_report(
            source_id=source.id,
            duplicated_by=actor,
            options=DuplicateOptions(include_services=True),
        )
    )

    assert dup.report_sequence == source.report_sequence + 1
    assert dup.parent_report_id == source.id
    assert dup.is_partial_report is True
    assert dup.status == ReportStatus.DRAFT
    assert dup.invoice_number == ""
    assert [l.description for l in dup.services.all()] == ["Endodoncia", "Radiografía"]
    assert dup.subtotal == source.subtotal
    assert dup.total == source.total
    assert dup.paid_amount == Decimal("0.00")
    assert dup.pending_amount == dup.total

    assert dup.status_history.get().details == f"Duplicated from report {source.id} (#2)"
    assert source.status_history.last().details == f"Duplicated into report {dup.id}"


@pytest.mark.django_db
def test_duplicate_with_default_options_copies_nothing(make_report, relationship_service, actor):
    source = make_report(complete=True)
    source.discount = Decimal("50.00")
    source.save(update_fields=["discount"])

    dup = _reload(relationship_service.duplicate_report(source_id=source.id, duplicated_by=actor))

    assert dup.services.count() == 0
    assert dup.payments.count() == 0
    assert dup.discount == Decimal("0.00")
    assert (dup.subtotal, dup.tax, dup.total) == (Decimal("0.00"), Decimal("0.00"), Decimal("0.00"))
    assert dup.pending_amount == Decimal("0.00")
    assert dup.parent_report_id == source.id
    assert dup.is_partial_report is True
    assert source.services.count() == 1


@pytest.mark.django_db
def test_duplicate_can_override_type_and_title(make_report, relationship_service, actor):
    source = make_report(options=None)

    dup = _reload(
        relationship_service.duplicate_report(
            source_id=source.id,
            duplicated_by=actor,
            options=DuplicateOptions(
                report_type=ReportType.ADDITIONAL_SERVICE,
                report_title="Seguimiento",
            ),
        )
    )

    assert dup.services.count() == 0
    assert dup.total == Decimal("0.00")
    assert dup.report_type == ReportType.ADDITIONAL_SERVICE
    assert dup.report_title == "Seguimiento"


@pytest.mark.django_db
def test_duplicate_with_payments_carries_paid_amount(make_report, report_service, relationship_service, actor):
    source = make_report(complete=True)
    report_service.add_payment(report_id=source.id, payment=PaymentInput(amount="400"), performed_by=actor)

    dup = _reload(
        relationship_service.duplicate_report(
            source_id=source.id,
            duplicated_by=actor,
            options=DuplicateOptions(include_services=True, include_payments=True),
        )
    )

    assert dup.payments.count() == 1
    assert dup.paid_amount == Decimal("400.00")
    assert dup.pending_amount == Decimal("760.00")

    completed = report_service.complete_report(report_id=dup.id, performed_by=actor)
    assert completed.status == ReportStatus.PARTIALLY_PAID


@pytest.mark.django_db
def test_deleted_report_cannot_be_duplicated(make_report, archival_service, relationship_service, actor):
    source = make_report()
    archival_service.soft_delete(report_id=source.id, deleted_by=actor)

    with pytest.raises(InvalidStateError):
        relationship_service.duplicate_report(source_id=source.id, duplicated_by=actor)


@pytest.mark.django_db
def test_link_is_symmetric(make_report, relationship_service, actor, clock):
    a, b, c = make_report(), make_report(), make_report()

    link_id = relationship_service.link_reports(
        report_ids=[a.id, b.id, c.id],
        link_type=LinkType.CONSOLIDATED,
        linked_by=actor,
        notes="Tratamiento de conductos",
    )

    a, b, c = _reload(a.id), _reload(b.id), _reload(c.id)
    for report in (a, b, c):
        assert report.link_id == link_id
        assert report.link_type == LinkType.CONSOLIDATED
        assert report.link_notes == "Tratamiento de conductos"
        assert report.linked_by == actor
        assert report.linked_at == clock()
    assert sorted(a.linked_reports) == sorted([str(b.id), str(c.id)])
    assert sorted(b.linked_reports) == sorted([str(a.id), str(c.id)])
    assert sorted(c.linked_reports) == sorted([str(a.id), str(b.id)])


@pytest.mark.django_db
def test_relinking_prunes_former_group(make_report, relationship_service, actor):
    a, b, c = make_report(), make_report(), make_report()
    first = relationship_service.link_reports(report_ids=[a.id, b.id], linked_by=actor)

    second = relationship_service.link_reports(report_ids=[a.id, c.id], linked_by=actor)

    a, b, c = _reload(a.id), _reload(b.id), _reload(c.id)
    assert second != first
    assert a.linked_reports == [str(c.id)]
    assert c.linked_reports == [str(a.id)]
    # b was left alone in its old group
    assert b.link_id is None
    assert b.linked_reports == []


@pytest.mark.django_db
def test_link_needs_two_distinct_reports(make_report, relationship_service, actor):
    a = make_report()

    with pytest.raises(ValidationError):
        relationship_service.link_reports(report_ids=[a.id, str(a.id)], linked_by=actor)


@pytest.mark.django_db
def test_link_with_missing_report_changes_nothing(make_report, relationship_service, actor):
    a = make_report()

    with pytest.raises(NotFoundError):
        relationship_service.link_reports(report_ids=[a.id, uuid.uuid4()], linked_by=actor)
    with pytest.raises(NotFoundError):
        relationship_service.link_reports(report_ids=[a.id, "nope"], linked_by=actor)

    assert _reload(a.id).link_id is None


@pytest.mark.django_db
def test_unlink_dissolves_pair(make_report, relationship_service, actor):
    a, b = make_report(), make_report()
    relationship_service.link_reports(report_ids=[a.id, b.id], linked_by=actor)

    relationship_service.unlink_report(report_id=a.id, unlinked_by=actor)

    a, b = _reload(a.id), _reload(b.id)
    assert a.link_id is None and a.linked_reports == []
    assert b.link_id is None and b.linked_reports == []


@pytest.mark.django_db
def test_unlink_keeps_rest_of_group(make_report, relationship_service, actor):
    a, b, c = make_report(), make_report(), make_report()
    link_id = relationship_service.link_reports(report_ids=[a.id, b.id, c.id], linked_by=actor)

    relationship_service.unlink_report(report_id=a.id, unlinked_by=actor)

    b, c = _reload(b.id), _reload(c.id)
    assert b.link_id == link_id
    assert b.linked_reports == [str(c.id)]
    assert c.linked_reports == [str(b.id)]


@pytest.mark.django_db
def test_unlink_unlinked_report(make_report, relationship_service, actor):
    with pytest.raises(InvalidStateError):
        relationship_service.unlink_report(report_id=make_report().id, unlinked_by=actor)


@pytest.mark.django_db
def test_appointment_billing_summary(make_report, report_service, archival_service, relationship_service, appointment, actor):
    paid = make_report(complete=True)
    report_service.add_payment(report_id=paid.id, payment=PaymentInput(amount="1160"), performed_by=actor)
    make_report(
        [service_line("Guarda oclusal", unit_price="2000", category="prosthetic")],
        options=None,
    )
    gone = make_report()
    archival_service.soft_delete(report_id=gone.id, deleted_by=actor)

    summary = relationship_service.get_appointment_billing_summary(str(appointment.id))

    assert summary == {
        "appointment_id": str(appointment.id),
        "total_amount": Decimal("3480.00"),
        "total_paid": Decimal("1160.00"),
        "total_pending": Decimal("2320.00"),
        "has_draft_reports": True,
        "has_completed_reports": True,
        "report_types": [ReportType.COMPLETE_VISIT],
        "report_count": 2,
    }


@pytest.mark.django_db
def test_summary_for_appointment_without_reports(relationship_service):
    summary = relationship_service.get_appointment_billing_summary("no-reports")

    assert summary["report_count"] == 0
    assert summary["total_amount"] == Decimal("0.00")
    assert summary["has_draft_reports"] is False
    assert summary["has_completed_reports"] is False
