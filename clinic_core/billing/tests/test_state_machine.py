# clinic_core/billing/tests/test_state_machine.py
import pytest

from clinic_core.billing import state_machine
from clinic_core.billing.models import BillingReport, ReportStatus
from clinic_core.common.api.exceptions import InvalidStateError


def _report(status, **extra):
    return BillingReport(status=status, **extra)


@pytest.mark.parametrize(
    "current,target",
    [
        (ReportStatus.DRAFT, ReportStatus.COMPLETED),
        (ReportStatus.COMPLETED, ReportStatus.PARTIALLY_PAID),
        (ReportStatus.PARTIALLY_PAID, ReportStatus.PARTIALLY_PAID),
        (ReportStatus.PARTIALLY_PAID, ReportStatus.PAID),
        (ReportStatus.COMPLETED, ReportStatus.OVERDUE),
        (ReportStatus.OVERDUE, ReportStatus.PAID),
        (ReportStatus.CANCELLED, ReportStatus.ARCHIVED),
        (ReportStatus.ARCHIVED, ReportStatus.DELETED),
    ],
)
def test_allowed_transitions(current, target):
    report = _report(current)

    previous = state_machine.transition(report, target)

    assert previous == current
    assert report.status == target


@pytest.mark.parametrize(
    "current,target",
    [
        (ReportStatus.DRAFT, ReportStatus.OVERDUE),
        (ReportStatus.COMPLETED, ReportStatus.DRAFT),
        (ReportStatus.PAID, ReportStatus.COMPLETED),
        (ReportStatus.PAID, ReportStatus.CANCELLED),
        (ReportStatus.CANCELLED, ReportStatus.PAID),
        (ReportStatus.DELETED, ReportStatus.DRAFT),
    ],
)
def test_rejected_transitions_leave_status_untouched(current, target):
    report = _report(current)

    with pytest.raises(InvalidStateError) as exc:
        state_machine.transition(report, target)

    assert exc.value.current_status == current
    assert report.status == current


def test_payable_statuses():
    assert ReportStatus.DRAFT not in state_machine.PAYABLE_STATUSES
    assert ReportStatus.CANCELLED not in state_machine.PAYABLE_STATUSES
    assert ReportStatus.OVERDUE in state_machine.PAYABLE_STATUSES


def test_ensure_status_reports_current_status():
    with pytest.raises(InvalidStateError) as exc:
        state_machine.ensure_status(_report(ReportStatus.PAID), {ReportStatus.DRAFT}, "edit")
    assert exc.value.current_status == ReportStatus.PAID


def test_ensure_not_deleted_checks_flag_and_status():
    state_machine.ensure_not_deleted(_report(ReportStatus.DRAFT), "edit")

    with pytest.raises(InvalidStateError):
        state_machine.ensure_not_deleted(_report(ReportStatus.DELETED), "edit")
    with pytest.raises(InvalidStateError):
        state_machine.ensure_not_deleted(_report(ReportStatus.DRAFT, is_deleted=True), "edit")


def test_reversal_target_uses_saved_status():
    archived = _report(ReportStatus.ARCHIVED, status_before_archive=ReportStatus.PAID)
    deleted = _report(ReportStatus.DELETED, status_before_delete=ReportStatus.COMPLETED)

    assert state_machine.reversal_target(archived) == ReportStatus.PAID
    assert state_machine.reversal_target(deleted) == ReportStatus.COMPLETED


def test_reversal_target_defaults_to_draft():
    assert state_machine.reversal_target(_report(ReportStatus.ARCHIVED)) == ReportStatus.DRAFT


def test_reversal_target_rejects_live_report():
    with pytest.raises(InvalidStateError):
        state_machine.reversal_target(_report(ReportStatus.COMPLETED))
