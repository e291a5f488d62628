# clinic_core/billing/state_machine.py
from __future__ import annotations

from clinic_core.billing.models import BillingReport, ReportStatus
from clinic_core.common.api.exceptions import InvalidStateError

S = ReportStatus

# Stored-status transitions. Unarchive/restore go back to the status recorded
# before the archive/delete and are checked separately (see reversal_target).
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    S.DRAFT: frozenset({S.COMPLETED, S.PARTIALLY_PAID, S.PAID, S.CANCELLED, S.ARCHIVED, S.DELETED}),
    S.COMPLETED: frozenset({S.PARTIALLY_PAID, S.PAID, S.OVERDUE, S.CANCELLED, S.ARCHIVED, S.DELETED}),
    S.PARTIALLY_PAID: frozenset({S.PARTIALLY_PAID, S.PAID, S.OVERDUE, S.CANCELLED, S.ARCHIVED, S.DELETED}),
    S.OVERDUE: frozenset({S.PARTIALLY_PAID, S.PAID, S.CANCELLED, S.ARCHIVED, S.DELETED}),
    S.PAID: frozenset({S.PARTIALLY_PAID, S.ARCHIVED, S.DELETED}),
    S.CANCELLED: frozenset({S.ARCHIVED, S.DELETED}),
    S.ARCHIVED: frozenset({S.DELETED}),
    S.DELETED: frozenset(),
}

# Statuses that accept payments. OVERDUE is a persisted view of COMPLETED /
# PARTIALLY_PAID and behaves like them.
PAYABLE_STATUSES = frozenset({S.COMPLETED, S.PARTIALLY_PAID, S.OVERDUE, S.PAID})

OVERDUE_CANDIDATES = frozenset({S.COMPLETED, S.PARTIALLY_PAID})

# Invoiced reports, whatever their settlement.
ISSUED_STATUSES = frozenset({S.COMPLETED, S.PARTIALLY_PAID, S.OVERDUE, S.PAID})


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_status(report: BillingReport, allowed: set[str] | frozenset[str], action: str) -> None:
    if report.status not in allowed:
        raise InvalidStateError(
            f"Cannot {action} a report in '{report.status}' status.",
            current_status=report.status,
        )


def ensure_not_deleted(report: BillingReport, action: str) -> None:
    if report.status == S.DELETED or report.is_deleted:
        raise InvalidStateError(f"Cannot {action} a deleted report.", current_status=report.status)


def transition(report: BillingReport, target: str) -> str:
    """
    Move `report` to `target` in memory and return the previous status.
    Caller persists and records the history entry.
    """
    previous = report.status
    if not can_transition(previous, target):
        raise InvalidStateError(
            f"Transition '{previous}' -> '{target}' is not allowed.",
            current_status=previous,
        )
    report.status = target
    return previous


def reversal_target(report: BillingReport) -> str:
    """
    Status to go back to when undoing an archive or soft delete.
    """
    if report.status == S.ARCHIVED:
        saved = report.status_before_archive
    elif report.status == S.DELETED:
        saved = report.status_before_delete
    else:
        raise InvalidStateError(
            f"Report in '{report.status}' status has nothing to restore.",
            current_status=report.status,
        )

    # archived-then-deleted reports restore to archived first
    return saved or S.DRAFT
